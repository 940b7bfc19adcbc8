"""
Canonical backend forms.

Every request shares one header block plus one form section named after the
FORMID. PIN-typed params arrive here already wrapped by crypto.wrap_pin; the
session never holds a clear PIN, so neither does any payload.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ussd_gateway.backend.crypto import transaction_id
from ussd_gateway.backend.operations import Operation
from ussd_gateway.core.errors import ConfigurationError, MissingParameter
from ussd_gateway.settings import settings

AIRTIME_MERCHANTS = {"mtn": "MTNUGAIRTIME", "airtel": "AIRTELUG"}
MOBILE_MONEY_MERCHANTS = {"mtn": "007001017", "airtel": "007001016"}
BILLER_MERCHANTS = {
    "NWSC": "007001003",
    "UMEME": "007001012",
    "DSTV": "007001001",
    "GOTV": "007001014",
    "STARTIMES": "007001015",
}

_INFO_FIELDS = tuple(f"INFOFIELD{n}" for n in range(1, 10))


@dataclass(frozen=True)
class CallIdentity:
    msisdn: str
    session_id: str
    shortcode: str
    customer_id: str = ""


def _header(ident: CallIdentity, form_id: str, merchant_id: Optional[str], customer_id: str = None) -> dict:
    return {
        "TRXSOURCE": "USSD",
        "CODEBASE": settings.CODEBASE,
        "APPNAME": settings.APP_NAME,
        "VERSIONNUMBER": settings.APP_VERSION,
        "CUSTOMERID": ident.customer_id if customer_id is None else customer_id,
        "MOBILENUMBER": ident.msisdn,
        "SHORTCODE": ident.shortcode,
        "FORMID": form_id,
        "SESSIONID": ident.session_id,
        "UNIQUEID": transaction_id(),
        "COUNTRY": settings.COUNTRY,
        "BANKID": settings.BANK_ID,
        "MERCHANTID": merchant_id,
    }


def _section(login: bool = False, **values) -> dict:
    out = {}
    if login:
        out.update({"LOGINTYPE": None, "PINTYPE": None})
    out.update({
        "BANKACCOUNTID": None,
        "MERCHANTID": None,
        "ACCOUNTID": None,
        "TRXDESCRIPTION": None,
        "AMOUNT": None,
        "MOBILENUMBER": None,
    })
    for name in _INFO_FIELDS:
        out[name] = None
    out.update(values)
    return out


def _pins(pin=None, full: bool = False) -> dict:
    if full:
        return {"OLDPIN": None, "NEWPIN": None, "CONFIRMPIN": None, "PIN": pin}
    return {"PIN": pin}


def _need(op: Operation, params: dict, name: str):
    val = params.get(name)
    if val is None or val == "":
        raise MissingParameter(op.value, name)
    return val


# --- builders ---------------------------------------------------------------

def build_authenticate(ident: CallIdentity, params: dict) -> dict:
    pin = _need(Operation.AUTHENTICATE, params, "pin")
    body = _header(ident, "GETCUSTOMER", None, customer_id="")
    body["GETCUSTOMER"] = _section(login=True)
    body["ENCRYPTEDFIELDS"] = _pins(pin=pin, full=True)
    return body


def build_change_pin(ident: CallIdentity, params: dict) -> dict:
    op = Operation.CHANGE_PIN
    old = _need(op, params, "oldPin")
    new = _need(op, params, "newPin")
    body = _header(ident, "CHANGEPIN", None)
    body["CHANGEPIN"] = _section(login=True)
    body["ENCRYPTEDFIELDS"] = {"OLDPIN": old, "NEWPIN": new, "CONFIRMPIN": params.get("confirmPin") or new}
    return body


def build_validate_wallet(ident: CallIdentity, params: dict) -> dict:
    op = Operation.VALIDATE_WALLET
    body = _header(ident, "VALIDATE", None)
    body["VALIDATE"] = _section(
        ACCOUNTID=_need(op, params, "walletNumber"),
        INFOFIELD1=_need(op, params, "network"),
    )
    body["ENCRYPTEDFIELDS"] = _pins()
    return body


def build_validate_account(ident: CallIdentity, params: dict) -> dict:
    body = _header(ident, "VALIDATE", None)
    body["VALIDATE"] = _section(
        ACCOUNTID=_need(Operation.VALIDATE_ACCOUNT, params, "accountNumber"),
        INFOFIELD1=params.get("billerType"),
        INFOFIELD2=params.get("area"),
        INFOFIELD3=params.get("accountType"),
    )
    body["ENCRYPTEDFIELDS"] = _pins()
    return body


def _bank_read(ident: CallIdentity, op: Operation, params: dict, merchant: str) -> dict:
    body = _header(ident, "PAYBILL", merchant)
    body["PAYBILL"] = _section(BANKACCOUNTID=_need(op, params, "sourceAccount"), MERCHANTID=merchant)
    body["ENCRYPTEDFIELDS"] = _pins()
    return body


def build_balance(ident: CallIdentity, params: dict) -> dict:
    return _bank_read(ident, Operation.GET_BALANCE, params, "BALANCE")


def build_mini_statement(ident: CallIdentity, params: dict) -> dict:
    return _bank_read(ident, Operation.GET_MINI_STATEMENT, params, "STATEMENT")


def build_static_data(ident: CallIdentity, params: dict) -> dict:
    body = _header(ident, "DBCALL", None, customer_id="")
    body["DYNAMICFORM"] = _section(
        HEADER="GETUSSDSTATICDATA",
        INFOFIELD1=_need(Operation.GET_STATIC_DATA, params, "category"),
        INFOFIELD2=params.get("parentId"),
    )
    body["ENCRYPTEDFIELDS"] = _pins()
    return body


def _mobile_money(ident: CallIdentity, op: Operation, params: dict, account_field: str, direction: str) -> dict:
    network = str(_need(op, params, "network")).lower()
    merchant = MOBILE_MONEY_MERCHANTS.get(network, "OTHER")
    body = _header(ident, "PAYBILL", merchant)
    body["PAYBILL"] = _section(
        BANKACCOUNTID=_need(op, params, account_field),
        MERCHANTID=merchant,
        ACCOUNTID=_need(op, params, "walletNumber"),
        AMOUNT=str(_need(op, params, "amount")),
        INFOFIELD1=f"{network.upper()} MONEY {direction}",
        INFOFIELD2=network.upper(),
    )
    body["ENCRYPTEDFIELDS"] = _pins(pin=params.get("pin"))
    return body


def build_withdraw(ident: CallIdentity, params: dict) -> dict:
    _need(Operation.WITHDRAW, params, "pin")
    return _mobile_money(ident, Operation.WITHDRAW, params, "sourceAccount", "WITHDRAW")


def build_deposit(ident: CallIdentity, params: dict) -> dict:
    return _mobile_money(ident, Operation.DEPOSIT, params, "destinationAccount", "DEPOSIT")


def build_airtime(ident: CallIdentity, params: dict) -> dict:
    op = Operation.AIRTIME
    network = str(_need(op, params, "network")).lower()
    merchant = AIRTIME_MERCHANTS.get(network, "OTHER")
    body = _header(ident, "PAYBILL", merchant)
    body["PAYBILL"] = _section(
        BANKACCOUNTID=_need(op, params, "sourceAccount"),
        MERCHANTID=merchant,
        ACCOUNTID=_need(op, params, "recipientNumber"),
        AMOUNT=str(_need(op, params, "amount")),
        INFOFIELD1=f"{network.upper()} AIRTIME",
        INFOFIELD2=network.upper(),
    )
    body["ENCRYPTEDFIELDS"] = _pins(pin=_need(op, params, "pin"))
    return body


def build_bill_payment(ident: CallIdentity, params: dict) -> dict:
    op = Operation.BILL_PAYMENT
    biller = str(_need(op, params, "billerType")).upper()
    merchant = BILLER_MERCHANTS.get(biller, "OTHER")
    body = _header(ident, "PAYBILL", merchant)
    body["PAYBILL"] = _section(
        BANKACCOUNTID=_need(op, params, "sourceAccount"),
        MERCHANTID=merchant,
        ACCOUNTID=_need(op, params, "accountNumber"),
        AMOUNT=str(_need(op, params, "amount")),
        INFOFIELD1=biller,
        INFOFIELD2=params.get("area") or params.get("package"),
    )
    body["ENCRYPTEDFIELDS"] = _pins(pin=_need(op, params, "pin"))
    return body


def build_transfer(ident: CallIdentity, params: dict) -> dict:
    op = Operation.TRANSFER
    body = _header(ident, "PAYBILL", "TRANSFER")
    body["PAYBILL"] = _section(
        BANKACCOUNTID=_need(op, params, "sourceAccount"),
        MERCHANTID="TRANSFER",
        ACCOUNTID=_need(op, params, "destinationAccount"),
        AMOUNT=str(_need(op, params, "amount")),
        INFOFIELD1=params.get("remark") or "",
        INFOFIELD2=params.get("transferType") or "OTHERACCOUNT",
        INFOFIELD3=params.get("recipientName") or "",
    )
    body["ENCRYPTEDFIELDS"] = _pins(pin=_need(op, params, "pin"))
    return body


BUILDERS: Dict[Operation, Callable[[CallIdentity, dict], dict]] = {
    Operation.AUTHENTICATE: build_authenticate,
    Operation.CHANGE_PIN: build_change_pin,
    Operation.VALIDATE_WALLET: build_validate_wallet,
    Operation.VALIDATE_ACCOUNT: build_validate_account,
    Operation.GET_BALANCE: build_balance,
    Operation.GET_MINI_STATEMENT: build_mini_statement,
    Operation.GET_STATIC_DATA: build_static_data,
    Operation.WITHDRAW: build_withdraw,
    Operation.DEPOSIT: build_deposit,
    Operation.AIRTIME: build_airtime,
    Operation.BILL_PAYMENT: build_bill_payment,
    Operation.TRANSFER: build_transfer,
}

_missing = [op for op in Operation if op is not Operation.UNKNOWN and op not in BUILDERS]
if _missing:
    raise RuntimeError(f"No payload builder for: {', '.join(op.value for op in _missing)}")


def build_payload(op: Operation, ident: CallIdentity, params: dict) -> dict:
    builder = BUILDERS.get(op)
    if builder is None:
        raise ConfigurationError(f"No payload builder for operation {op.value}")
    return builder(ident, params)
