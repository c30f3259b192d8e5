"""
Employee Authentication Module

Password hashing, employee login and JWT issue/verification. Every ledger
endpoint except login requires a valid bearer token.
"""

from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
import hashlib
import hmac
import secrets

import jwt

from .storage import LedgerStore, StorageRecord
from .logging_config import get_logger, log_action


class EmployeeRole(Enum):
    """Roles an employee can hold"""
    TELLER = "teller"
    MANAGER = "manager"


class AuthenticationError(Exception):
    """Raised when credentials or a bearer token are not acceptable"""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)
        self.message = message


@dataclass
class Employee(StorageRecord):
    """Bank employee who may operate the API"""
    username: str
    password_hash: str
    name: str
    role: str
    created_at: datetime
    updated_at: datetime

    def public_dict(self) -> Dict[str, Any]:
        """Identity fields safe to return to clients"""
        return {"employee_id": self.id, "username": self.username, "role": self.role}


class EmployeeAuthenticator:
    """
    Verifies employee credentials and issues signed session tokens
    """

    def __init__(
        self,
        storage: LedgerStore,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        jwt_expiry_hours: int = 24
    ):
        self.storage = storage
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.jwt_expiry_hours = jwt_expiry_hours
        self.logger = get_logger("bank_ledger.auth")

    @staticmethod
    def hash_password(password: str, salt: Optional[str] = None) -> str:
        """Hash password with scrypt; the result is 'salt$hexdigest'"""
        salt = salt or secrets.token_hex(16)
        digest = hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()
        return f"{salt}${digest}"

    @classmethod
    def verify_password(cls, password: str, stored_hash: str) -> bool:
        """Constant-time comparison of a password against a stored hash"""
        if not stored_hash or "$" not in stored_hash:
            return False
        salt, _ = stored_hash.split("$", 1)
        return hmac.compare_digest(cls.hash_password(password, salt), stored_hash)

    def register_employee(
        self,
        username: str,
        password: str,
        name: str,
        role: EmployeeRole = EmployeeRole.TELLER
    ) -> Employee:
        """Create an employee, or reset name/role/password of an existing username"""
        row = self.storage.upsert_employee(
            username=username,
            password_hash=self.hash_password(password),
            name=name,
            role=role.value
        )
        return Employee.from_row(row)

    def authenticate(self, username: str, password: str) -> Employee:
        """
        Check credentials

        Raises:
            AuthenticationError: unknown username or wrong password (same message for both)
        """
        row = self.storage.get_employee_by_username(username)
        if row is None:
            raise AuthenticationError("Invalid credentials")

        employee = Employee.from_row(row)
        if not self.verify_password(password, employee.password_hash):
            raise AuthenticationError("Invalid credentials")
        return employee

    def issue_token(self, employee: Employee) -> str:
        """Sign a JWT for an authenticated employee"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(employee.id),
            "employeeId": employee.id,
            "username": employee.username,
            "role": employee.role,
            "iat": now,
            "exp": now + timedelta(hours=self.jwt_expiry_hours)
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)

    def login(self, username: str, password: str) -> Dict[str, Any]:
        """Authenticate and return {token, employee}"""
        try:
            employee = self.authenticate(username, password)
        except AuthenticationError:
            log_action(
                self.logger, "warning", "Authentication failed",
                action="login_failed", resource="auth",
                extra={"username": username}
            )
            raise

        log_action(
            self.logger, "info", "Employee authenticated successfully",
            user_id=str(employee.id), action="login", resource="auth"
        )
        return {"token": self.issue_token(employee), "employee": employee.public_dict()}

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Validate a bearer token and return its claims

        Raises:
            AuthenticationError: expired, tampered or otherwise invalid token
        """
        try:
            claims = jwt.decode(token, self.jwt_secret, algorithms=[self.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")

        if not isinstance(claims.get("employeeId"), int):
            raise AuthenticationError("Invalid token")
        if self.storage.get_employee(claims["employeeId"]) is None:
            raise AuthenticationError("Invalid token")
        return claims
