"""
Ledger Error Taxonomy

Every failure raised by the ledger is a LedgerError carrying a stable
``code``. Precondition failures also derive from the matching builtin
(ValueError, IndexError, OverflowError) so callers can catch them generically.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors"""
    code = "ledger_error"


class InvalidAmount(LedgerError, ValueError):
    """Raised for a zero-value mint or distribution, or a malformed amount"""
    code = "invalid_amount"


class InvalidAccount(LedgerError, ValueError):
    """Raised when an account identifier is empty or not a string"""
    code = "invalid_account"


class InsufficientBalance(LedgerError, ValueError):
    """Raised when a transfer exceeds the sender's balance"""
    code = "insufficient_balance"


class AllowanceExceeded(LedgerError, ValueError):
    """Raised when a delegated transfer exceeds the approved allowance"""
    code = "allowance_exceeded"


class NoSupply(LedgerError, ValueError):
    """Raised when distributing dividends while total supply is zero"""
    code = "no_supply"


class NothingToBurn(LedgerError, ValueError):
    """Raised when burning from an account with zero balance"""
    code = "nothing_to_burn"


class NoDividend(LedgerError, ValueError):
    """Raised when withdrawing with no pending dividend"""
    code = "no_dividend"


class InvalidIndex(LedgerError, IndexError):
    """Raised for a holder index outside [1, count]"""
    code = "invalid_index"


class AmountOverflow(LedgerError, OverflowError):
    """Raised when checked arithmetic leaves the unsigned integer range"""
    code = "amount_overflow"


class TransferFailed(LedgerError):
    """Raised when the value transfer gateway fails to pay out"""
    code = "transfer_failed"
