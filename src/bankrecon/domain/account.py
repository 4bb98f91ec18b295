"""Account domain service."""

from typing import Any, Optional
from bankrecon.database.base import Database
from bankrecon.domain.entities import Account as AccountEntity
from bankrecon.domain.errors import ConflictError, NotFoundError, ValidationError, account_not_found


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_account(self, name: str, bank_name: str, currency: str = "VND") -> int:
        """Create a new account.

        Args:
            name: Account name
            bank_name: Bank name
            currency: ISO currency code, informational only

        Returns:
            Account ID

        Raises:
            ValidationError: If name is blank or currency is not a 3-letter code
            ConflictError: If account name already exists
        """
        name = name.strip()
        if not name:
            raise ValidationError("Account name cannot be empty")
        currency = currency.strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"Invalid currency code '{currency}'")

        if self.db.get_account_by_name(name) is not None:
            raise ConflictError(f"Account with name '{name}' already exists")

        return self.db.create_account(name=name, bank_name=bank_name, currency=currency)

    def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID.

        Args:
            account_id: Account ID

        Returns:
            Account entity or None if not found
        """
        return self.db.get_account(account_id)

    def get_account_by_name(self, name: str) -> Optional[AccountEntity]:
        """Get account by name."""
        return self.db.get_account_by_name(name)

    def require_account(self, account_id: int) -> AccountEntity:
        """Get account by ID, raising NotFoundError when missing."""
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        return account

    def list_accounts(self) -> list[AccountEntity]:
        """List all accounts.

        Returns:
            List of account entities
        """
        return self.db.list_accounts()

    def get_import_config(self, account_id: int) -> Optional[dict[str, Any]]:
        """Return the configuration saved by the account's last import, if any."""
        return self.require_account(account_id).last_import_config

    def save_import_config(self, account_id: int, config: dict[str, Any]) -> None:
        """Remember column mappings and options for the next import."""
        self.require_account(account_id)
        self.db.save_import_config(account_id, config)
