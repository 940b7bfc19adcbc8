from enum import Enum


class Operation(str, Enum):
    AUTHENTICATE = "AUTHENTICATE"
    VALIDATE_WALLET = "VALIDATE_WALLET"
    VALIDATE_ACCOUNT = "VALIDATE_ACCOUNT"
    GET_BALANCE = "GET_BALANCE"
    GET_MINI_STATEMENT = "GET_MINI_STATEMENT"
    GET_STATIC_DATA = "GET_STATIC_DATA"
    WITHDRAW = "WITHDRAW"
    DEPOSIT = "DEPOSIT"
    AIRTIME = "AIRTIME"
    BILL_PAYMENT = "BILL_PAYMENT"
    TRANSFER = "TRANSFER"
    CHANGE_PIN = "CHANGE_PIN"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, name) -> "Operation":
        try:
            return cls(str(name).upper())
        except ValueError:
            return cls.UNKNOWN


# Backend endpoint family per operation
SERVICE_TYPE = {
    Operation.AUTHENTICATE: "authenticate",
    Operation.CHANGE_PIN: "authenticate",
    Operation.VALIDATE_WALLET: "validate",
    Operation.VALIDATE_ACCOUNT: "validate",
    Operation.GET_BALANCE: "bank",
    Operation.GET_MINI_STATEMENT: "bank",
    Operation.WITHDRAW: "bank",
    Operation.DEPOSIT: "bank",
    Operation.TRANSFER: "bank",
    Operation.AIRTIME: "purchase",
    Operation.BILL_PAYMENT: "purchase",
    Operation.GET_STATIC_DATA: "other",
}

MONEY_MOVING = frozenset({
    Operation.WITHDRAW,
    Operation.DEPOSIT,
    Operation.AIRTIME,
    Operation.BILL_PAYMENT,
    Operation.TRANSFER,
    Operation.CHANGE_PIN,
})

# Safe to repeat once on a transport failure
IDEMPOTENT_READS = frozenset({
    Operation.VALIDATE_WALLET,
    Operation.VALIDATE_ACCOUNT,
    Operation.GET_BALANCE,
    Operation.GET_MINI_STATEMENT,
    Operation.GET_STATIC_DATA,
})

# Parameters each operation needs before a payload can be built
REQUIRED_PARAMS = {
    Operation.AUTHENTICATE: ("pin",),
    Operation.VALIDATE_WALLET: ("walletNumber", "network"),
    Operation.VALIDATE_ACCOUNT: ("accountNumber",),
    Operation.GET_BALANCE: ("sourceAccount",),
    Operation.GET_MINI_STATEMENT: ("sourceAccount",),
    Operation.GET_STATIC_DATA: ("category",),
    Operation.WITHDRAW: ("sourceAccount", "walletNumber", "network", "amount", "pin"),
    Operation.DEPOSIT: ("destinationAccount", "walletNumber", "network", "amount"),
    Operation.AIRTIME: ("sourceAccount", "recipientNumber", "network", "amount", "pin"),
    Operation.BILL_PAYMENT: ("sourceAccount", "accountNumber", "billerType", "amount", "pin"),
    Operation.TRANSFER: ("sourceAccount", "destinationAccount", "amount", "pin"),
    Operation.CHANGE_PIN: ("oldPin", "newPin"),
}

PIN_BEARING = frozenset(op for op, names in REQUIRED_PARAMS.items() if "pin" in names or "oldPin" in names)


def is_money_moving(op: Operation) -> bool:
    return op in MONEY_MOVING


def is_retryable(op: Operation) -> bool:
    return op in IDEMPOTENT_READS
