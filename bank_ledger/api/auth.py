"""
Authentication and authorization dependencies
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .schemas import LoginRequest, login_payload
from ..storage import LedgerStore, create_store
from ..customers import CustomerManager
from ..accounts import AccountService
from ..transfers import TransferEngine
from ..auth import EmployeeAuthenticator, AuthenticationError
from ..config import LedgerConfig, get_config


class BankingSystem:
    """Ledger components wired to one store handle"""

    def __init__(self, config: Optional[LedgerConfig] = None, storage: Optional[LedgerStore] = None):
        self.config = config or get_config()

        # Initialize storage
        if storage is None:
            storage = create_store(
                self.config.database_url,
                sqlite_busy_timeout_ms=self.config.sqlite_busy_timeout_ms,
                postgres_pool_size=self.config.postgres_pool_size
            )
        self.storage = storage

        # Initialize core components
        self.customer_manager = CustomerManager(self.storage)
        self.account_service = AccountService(self.storage)
        self.transfer_engine = TransferEngine(
            self.storage,
            max_retries=self.config.transfer_max_retries,
            retry_backoff=self.config.transfer_retry_backoff_ms / 1000
        )
        self.authenticator = EmployeeAuthenticator(
            self.storage,
            jwt_secret=self.config.jwt_secret,
            jwt_algorithm=self.config.jwt_algorithm,
            jwt_expiry_hours=self.config.jwt_expiry_hours
        )

    def close(self) -> None:
        self.storage.close()


# JWT Security
security = HTTPBearer(auto_error=False)


def get_banking_system(request: Request) -> BankingSystem:
    return request.app.state.banking_system


def get_current_employee(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> Dict[str, Any]:
    """Dependency that validates the bearer JWT and returns its claims"""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return system.authenticator.decode_token(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)


router = APIRouter()


@router.post("/login")
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate an employee and return a JWT"""
    try:
        result = system.authenticator.login(request.username, request.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
    return login_payload(result)
