"""
Core Data Models for the Ledger

These models define the strict schemas for all documents the ledger stores
and all payloads it accepts. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Round-trip through any document store as plain dicts
4. Keep derived values (balances) clearly separated from user input

DESIGN DECISION: Monetary values are Decimal, never float.
Amounts are always positive; direction is encoded by transaction type
and transfer type, never by sign.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from tenant_ledger.config import DEFAULT_COLOR


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Top-level account classification."""
    ASSET = "Asset"
    LIABILITY = "Liability"
    INCOME = "Income"
    EXPENSE = "Expense"
    EQUITY = "Equity"


class TransactionType(str, Enum):
    """Kind of ledger entry."""
    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"


class TransferType(str, Enum):
    """
    Which half of a transfer pair a record is.

    Records written before transfers were paired carry no transfer type;
    those are treated as outgoing.
    """
    OUTGOING = "Outgoing"
    INCOMING = "Incoming"


class FavoriteType(str, Enum):
    """What a favorite points at."""
    ACCOUNT = "account"
    SUB_ACCOUNT = "subAccount"


HEX_COLOR_PATTERN = "^#[0-9a-fA-F]{6}$"


# =============================================================================
# STORED DOCUMENTS
# =============================================================================

class LedgerDocument(BaseModel):
    """
    Fields every stored document carries.

    `version` is managed by the document store and increases on every
    write; it backs the optimistic concurrency checks.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    version: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Account(LedgerDocument):
    """
    A top-level account.

    `total_balance` is a cached sum of the child sub-account balances.
    """
    account_type: AccountType
    name: str = Field(..., min_length=1, max_length=200)
    total_balance: Decimal = Decimal("0")
    is_favorite: bool = False
    color: str = DEFAULT_COLOR


class SubAccount(LedgerDocument):
    """
    A sub-account under an Account.

    `balance` is a cached fold over the sub-account's transactions.
    `account_id` never changes after creation.
    """
    account_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    balance: Decimal = Decimal("0")
    is_favorite: bool = False
    color: str = DEFAULT_COLOR


class Transaction(LedgerDocument):
    """
    A single ledger entry on one sub-account.

    A transfer is two of these: an Outgoing record on the source
    sub-account pointing at the destination (to_*), and an Incoming record
    on the destination pointing back (from_*), linked to each other
    through linked_transaction_id.
    """
    account_id: str = Field(..., min_length=1)
    sub_account_id: str = Field(..., min_length=1)
    transaction_type: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    transaction_date: datetime

    # Transfer pair fields
    transfer_type: Optional[TransferType] = None
    linked_transaction_id: Optional[str] = None
    to_account_id: Optional[str] = None
    to_sub_account_id: Optional[str] = None
    from_account_id: Optional[str] = None
    from_sub_account_id: Optional[str] = None

    @property
    def is_linked(self) -> bool:
        """Is this one half of a transfer pair?"""
        return (
            self.transaction_type == TransactionType.TRANSFER
            and bool(self.linked_transaction_id)
        )

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this entry on its sub-account balance."""
        if self.transaction_type == TransactionType.INCOME:
            return self.amount
        if self.transaction_type == TransactionType.EXPENSE:
            return -self.amount
        if self.transfer_type == TransferType.INCOMING:
            return self.amount
        return -self.amount


class Favorite(LedgerDocument):
    """A bookmark on exactly one account or sub-account."""
    account_id: Optional[str] = None
    sub_account_id: Optional[str] = None
    favorite_type: FavoriteType

    @model_validator(mode='after')
    def validate_single_target(self) -> 'Favorite':
        """Exactly one of account_id / sub_account_id is set."""
        if bool(self.account_id) == bool(self.sub_account_id):
            raise ValueError("Exactly one of account_id or sub_account_id must be set")
        return self


# =============================================================================
# PAYLOADS - what callers may send
# =============================================================================

class AccountCreate(BaseModel):
    """Fields accepted when creating an account."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    account_type: AccountType
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_favorite: bool = False
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)


class AccountUpdate(BaseModel):
    """Fields an account update may change."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    account_type: Optional[AccountType] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_favorite: Optional[bool] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)


class SubAccountCreate(BaseModel):
    """Fields accepted when creating a sub-account."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    is_favorite: bool = False
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)


class SubAccountUpdate(BaseModel):
    """Fields a sub-account update may change."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_favorite: Optional[bool] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)


class TransactionCreate(BaseModel):
    """
    Fields accepted when creating a transaction.

    A Transfer additionally names its destination account and sub-account.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    account_id: str = Field(..., min_length=1)
    sub_account_id: str = Field(..., min_length=1)
    transaction_type: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: str = Field(default="", max_length=500)
    category: str = Field(default="", max_length=100)
    tags: list[str] = Field(default_factory=list)
    transaction_date: Optional[datetime] = None

    to_account_id: Optional[str] = Field(default=None, min_length=1)
    to_sub_account_id: Optional[str] = Field(default=None, min_length=1)

    @model_validator(mode='after')
    def validate_transfer_destination(self) -> 'TransactionCreate':
        """Transfers need a destination; other types must not have one."""
        if self.transaction_type == TransactionType.TRANSFER:
            if not self.to_account_id or not self.to_sub_account_id:
                raise ValueError(
                    "to_account_id and to_sub_account_id are required for Transfer transactions"
                )
        elif self.to_account_id or self.to_sub_account_id:
            raise ValueError("Only Transfer transactions may have a destination")
        return self


class TransactionUpdate(BaseModel):
    """Fields a transaction update may change."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    transaction_type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100)
    tags: Optional[list[str]] = None
    transaction_date: Optional[datetime] = None


class BootstrapResult(BaseModel):
    """Outcome of creating a tenant's default accounts."""
    skipped: bool = False
    account_ids: list[str] = Field(default_factory=list)
    sub_account_ids: list[str] = Field(default_factory=list)

    @property
    def message(self) -> str:
        if self.skipped:
            return "Tenant already has accounts; nothing created"
        return (
            f"Successfully initialized {len(self.account_ids)} accounts "
            f"and {len(self.sub_account_ids)} sub-accounts"
        )
