"""
EBO SACCO dialog definition.

Content only: wording, flow order and translations. Structure and integrity
rules live in core.menu_graph.
"""
from ussd_gateway.backend.operations import Operation
from ussd_gateway.core.menu_graph import (
    Choice,
    InputNode,
    MenuGraph,
    MenuNode,
    ServiceNode,
    SideEffect,
    StaticNode,
)
from ussd_gateway.core.validation import ValidationSpec, Validator

ENTRY = "welcome"
HOME = "main_menu"

GOODBYE = "Thank you for using EBO SACCO."
HOME_OR_EXIT = "\n00. Home\n000. Exit"
CONFIRM_PIN = "Enter PIN to confirm and complete transaction"

PIN = ValidationSpec("pin", {"length": 4})
AMOUNT = ValidationSpec("amount")
ACCOUNT_NO = ValidationSpec("account", {"min_length": 4, "max_length": 20})


def _network(network: str, next_node: str) -> Choice:
    return Choice(next=next_node, field="network", value=network)


def _after_result(node_id: str, text: str) -> StaticNode:
    return StaticNode(node_id, text + HOME_OR_EXIT, next=HOME)


def _account_picker(node_id: str, prompt: str, store_as: str, next_node: str, back: str) -> MenuNode:
    return MenuNode(node_id, prompt, options_from="accounts", store_as=store_as, next=next_node, back=back)


def _nodes():
    return [
        # --- login + main menu
        InputNode(
            ENTRY,
            "Welcome to EBO SACCO. Please enter your PIN to continue",
            field="pin",
            validation=PIN,
            next=HOME,
            sensitive=True,
        ),
        MenuNode(
            HOME,
            "1. Withdraw\n2. Deposit\n3. Airtime\n4. Payments\n5. Balance\n"
            "6. Internal Transfers\n7. Mini Statement\n8. Settings\n0. Exit",
            choices={
                "1": Choice("withdraw_menu"),
                "2": Choice("deposit_menu"),
                "3": Choice("airtime_menu"),
                "4": Choice("payments_menu"),
                "5": Choice("balance_menu"),
                "6": Choice("transfers_menu"),
                "7": Choice("statement_menu"),
                "8": Choice("settings_menu"),
                "0": Choice(side_effect=SideEffect.END_SESSION, value=GOODBYE),
            },
        ),

        # --- withdraw to mobile money
        MenuNode(
            "withdraw_menu",
            "Withdraw\n1. Send to MTN Money\n2. Send to Airtel Money\n0. Back",
            choices={"1": _network("mtn", "withdraw_mtn_type"), "2": _network("airtel", "withdraw_airtel_type")},
            back=HOME,
        ),
        MenuNode(
            "withdraw_mtn_type",
            "Send to MTN Money\n1. Send to own number\n2. Send to other number\n0. Back",
            choices={
                "1": Choice("withdraw_validate_wallet", SideEffect.USE_OWN_NUMBER, field="walletNumber"),
                "2": Choice("withdraw_mtn_number"),
            },
            back="withdraw_menu",
        ),
        MenuNode(
            "withdraw_airtel_type",
            "Send to Airtel Money\n1. Send to own number\n2. Send to other number\n0. Back",
            choices={
                "1": Choice("withdraw_validate_wallet", SideEffect.USE_OWN_NUMBER, field="walletNumber"),
                "2": Choice("withdraw_airtel_number"),
            },
            back="withdraw_menu",
        ),
        InputNode(
            "withdraw_mtn_number", "Enter the MTN mobile number", field="walletNumber",
            validation=ValidationSpec("phone", {"network": "mtn"}), next="withdraw_validate_wallet",
            back="withdraw_mtn_type",
        ),
        InputNode(
            "withdraw_airtel_number", "Enter the Airtel mobile number", field="walletNumber",
            validation=ValidationSpec("phone", {"network": "airtel"}), next="withdraw_validate_wallet",
            back="withdraw_airtel_type",
        ),
        ServiceNode(
            "withdraw_validate_wallet", Operation.VALIDATE_WALLET,
            on_success="withdraw_amount", on_error="withdraw_menu",
            params={"walletNumber": "walletNumber", "network": "network"},
        ),
        InputNode("withdraw_amount", "Enter Amount", field="amount", validation=AMOUNT,
                  next="withdraw_account", back="withdraw_menu"),
        _account_picker("withdraw_account", "Select account to debit", "sourceAccount", "withdraw_pin", "withdraw_amount"),
        InputNode("withdraw_pin", CONFIRM_PIN, field="pin", validation=PIN, next="withdraw_result", sensitive=True),
        ServiceNode(
            "withdraw_result", Operation.WITHDRAW,
            on_success="withdraw_success", on_error="withdraw_error",
            params={
                "sourceAccount": "sourceAccount",
                "walletNumber": "walletNumber",
                "network": "network",
                "amount": "amount",
                "pin": "pin",
            },
        ),
        StaticNode("withdraw_success", "Withdrawal of UGX {amount} to {walletNumber} was successful. " + GOODBYE),
        _after_result("withdraw_error", "Transaction failed. Please try again later."),

        # --- deposit from mobile money
        MenuNode(
            "deposit_menu",
            "Deposit from\n1. MTN Money\n2. Airtel Money\n0. Back",
            choices={"1": _network("mtn", "deposit_mtn_number"), "2": _network("airtel", "deposit_airtel_number")},
            back=HOME,
        ),
        InputNode(
            "deposit_mtn_number", "Enter mobile money number", field="walletNumber",
            validation=ValidationSpec("phone", {"network": "mtn"}), next="deposit_validate_wallet",
            back="deposit_menu",
        ),
        InputNode(
            "deposit_airtel_number", "Enter mobile money number", field="walletNumber",
            validation=ValidationSpec("phone", {"network": "airtel"}), next="deposit_validate_wallet",
            back="deposit_menu",
        ),
        ServiceNode(
            "deposit_validate_wallet", Operation.VALIDATE_WALLET,
            on_success="deposit_amount", on_error="deposit_menu",
            params={"walletNumber": "walletNumber", "network": "network"},
        ),
        InputNode("deposit_amount", "Enter Amount", field="amount", validation=AMOUNT,
                  next="deposit_account", back="deposit_menu"),
        _account_picker("deposit_account", "Select account to credit", "destinationAccount", "deposit_confirm", "deposit_amount"),
        MenuNode(
            "deposit_confirm",
            "Deposit UGX {amount} from {walletNumber}\n1. Confirm\n2. Cancel",
            choices={"1": Choice("deposit_result"), "2": Choice(HOME)},
        ),
        ServiceNode(
            "deposit_result", Operation.DEPOSIT,
            on_success="deposit_success", on_error="deposit_error",
            params={
                "destinationAccount": "destinationAccount",
                "walletNumber": "walletNumber",
                "network": "network",
                "amount": "amount",
            },
        ),
        StaticNode("deposit_success", "Deposit request of UGX {amount} sent to {walletNumber}. Approve it on your phone. " + GOODBYE),
        _after_result("deposit_error", "Deposit failed. Please try again later."),

        # --- airtime
        MenuNode(
            "airtime_menu",
            "Buy Airtime\n1. MTN\n2. Airtel\n0. Back",
            choices={"1": _network("mtn", "airtime_mtn_type"), "2": _network("airtel", "airtime_airtel_type")},
            back=HOME,
        ),
        MenuNode(
            "airtime_mtn_type",
            "Buy MTN Airtime\n1. Buy for own MTN number\n2. Buy for other MTN number\n0. Back",
            choices={
                "1": Choice("airtime_amount", SideEffect.USE_OWN_NUMBER, field="recipientNumber"),
                "2": Choice("airtime_mtn_number"),
            },
            back="airtime_menu",
        ),
        MenuNode(
            "airtime_airtel_type",
            "Buy Airtel Airtime\n1. Buy for own Airtel number\n2. Buy for other Airtel number\n0. Back",
            choices={
                "1": Choice("airtime_amount", SideEffect.USE_OWN_NUMBER, field="recipientNumber"),
                "2": Choice("airtime_airtel_number"),
            },
            back="airtime_menu",
        ),
        InputNode(
            "airtime_mtn_number", "Enter MTN Mobile Number", field="recipientNumber",
            validation=ValidationSpec("phone", {"network": "mtn"}), next="airtime_amount",
            back="airtime_mtn_type",
        ),
        InputNode(
            "airtime_airtel_number", "Enter Airtel Mobile Number", field="recipientNumber",
            validation=ValidationSpec("phone", {"network": "airtel"}), next="airtime_amount",
            back="airtime_airtel_type",
        ),
        InputNode("airtime_amount", "Enter Amount", field="amount", validation=AMOUNT,
                  next="airtime_account", back="airtime_menu"),
        _account_picker("airtime_account", "Select account to debit", "sourceAccount", "airtime_pin", "airtime_amount"),
        InputNode("airtime_pin", CONFIRM_PIN, field="pin", validation=PIN, next="airtime_result", sensitive=True),
        ServiceNode(
            "airtime_result", Operation.AIRTIME,
            on_success="airtime_success", on_error="airtime_error",
            params={
                "sourceAccount": "sourceAccount",
                "recipientNumber": "recipientNumber",
                "network": "network",
                "amount": "amount",
                "pin": "pin",
            },
        ),
        StaticNode("airtime_success", "Airtime of UGX {amount} sent to {recipientNumber}. " + GOODBYE),
        _after_result("airtime_error", "Airtime purchase failed. Please try again later."),

        # --- bill payments
        MenuNode(
            "payments_menu",
            "Payments\n1. NWSC\n2. Light\n3. Pay TV\n0. Back",
            choices={
                "1": Choice("nwsc_areas", field="billerType", value="NWSC"),
                "2": Choice("light_account", field="billerType", value="UMEME"),
                "3": Choice("pay_tv_menu"),
            },
            back=HOME,
        ),
        ServiceNode(
            "nwsc_areas", Operation.GET_STATIC_DATA,
            on_success="nwsc_select_area", on_error="payment_error",
            constants={"category": "NWSCAREA"},
            store_results={"options": "areas"},
        ),
        MenuNode("nwsc_select_area", "Select Area", options_from="areas", store_as="area",
                 next="nwsc_account", back="payments_menu"),
        InputNode("nwsc_account", "Enter NWSC account number", field="accountNumber",
                  validation=ACCOUNT_NO, next="bill_validate_account", back="payments_menu"),
        InputNode("light_account", "Enter Light account number", field="accountNumber",
                  validation=ACCOUNT_NO, next="bill_validate_account", back="payments_menu"),
        MenuNode(
            "pay_tv_menu",
            "Pay TV\n1. DStv\n2. GOtv\n3. Startimes\n0. Back",
            choices={
                "1": Choice("dstv_payment", field="billerType", value="DSTV"),
                "2": Choice("tv_account", field="billerType", value="GOTV"),
                "3": Choice("tv_account", field="billerType", value="STARTIMES"),
            },
            back="payments_menu",
        ),
        MenuNode(
            "dstv_payment",
            "Select A/C type\n1. Account Number\n2. Smart Card Number\n0. Back",
            choices={
                "1": Choice("dstv_account_number", field="accountType", value="ACCOUNT"),
                "2": Choice("dstv_smart_card", field="accountType", value="SMARTCARD"),
            },
            back="pay_tv_menu",
        ),
        InputNode("dstv_account_number", "Enter DStv account number", field="accountNumber",
                  validation=ValidationSpec("alphanumeric", {"min_length": 5, "max_length": 20}),
                  next="dstv_validate_account", back="dstv_payment"),
        InputNode("dstv_smart_card", "Enter DStv Smart Card Number", field="accountNumber",
                  validation=ValidationSpec("numeric", {"min_length": 10, "max_length": 12}),
                  next="dstv_validate_account", back="dstv_payment"),
        ServiceNode(
            "dstv_validate_account", Operation.VALIDATE_ACCOUNT,
            on_success="dstv_packages", on_error="dstv_payment",
            params={"accountNumber": "accountNumber", "billerType": "billerType", "accountType": "accountType"},
        ),
        ServiceNode(
            "dstv_packages", Operation.GET_STATIC_DATA,
            on_success="dstv_select_package", on_error="payment_error",
            constants={"category": "PAYTVPACKAGE"},
            params={"parentId": "billerType"},
            store_results={"options": "packages"},
        ),
        MenuNode("dstv_select_package", "Select package", options_from="packages", store_as="package",
                 next="bill_amount", back="dstv_payment"),
        InputNode("tv_account", "Enter {billerType} account or smart card number", field="accountNumber",
                  validation=ACCOUNT_NO, next="bill_validate_account", back="pay_tv_menu"),
        ServiceNode(
            "bill_validate_account", Operation.VALIDATE_ACCOUNT,
            on_success="bill_amount", on_error="payments_menu",
            params={"accountNumber": "accountNumber", "billerType": "billerType", "area": "area"},
        ),
        InputNode("bill_amount", "Enter Amount", field="amount", validation=AMOUNT,
                  next="bill_account", back="payments_menu"),
        _account_picker("bill_account", "Select account to debit", "sourceAccount", "bill_pin", "bill_amount"),
        InputNode("bill_pin", CONFIRM_PIN, field="pin", validation=PIN, next="bill_result", sensitive=True),
        ServiceNode(
            "bill_result", Operation.BILL_PAYMENT,
            on_success="payment_success", on_error="payment_error",
            params={
                "sourceAccount": "sourceAccount",
                "accountNumber": "accountNumber",
                "billerType": "billerType",
                "amount": "amount",
                "pin": "pin",
                "area": "area",
                "package": "package",
            },
        ),
        StaticNode("payment_success", "Payment of UGX {amount} to {billerType} account {accountNumber} was successful. " + GOODBYE),
        _after_result("payment_error", "Payment failed. Please try again later."),

        # --- balance
        MenuNode(
            "balance_menu",
            "Balance\n1. Savings\n2. Loans\n0. Back",
            choices={"1": Choice("savings_balance_select"), "2": Choice("loans_balance")},
            back=HOME,
        ),
        _account_picker("savings_balance_select", "Savings Balance\nSelect account", "sourceAccount",
                        "balance_result", "balance_menu"),
        ServiceNode(
            "balance_result", Operation.GET_BALANCE,
            on_success="balance_display", on_error="balance_error",
            params={"sourceAccount": "sourceAccount"},
            store_results={"balance": "balance"},
        ),
        ServiceNode(
            "loans_balance", Operation.GET_STATIC_DATA,
            on_success="loans_balance_select", on_error="balance_error",
            constants={"category": "LOANACCOUNTS"},
            params={"parentId": "customerId"},
            store_results={"options": "loanAccounts"},
        ),
        MenuNode("loans_balance_select", "Loan Balance\nSelect loan", options_from="loanAccounts",
                 store_as="loanAccount", next="loans_balance_result", back="balance_menu"),
        ServiceNode(
            "loans_balance_result", Operation.GET_BALANCE,
            on_success="balance_display", on_error="balance_error",
            params={"sourceAccount": "loanAccount"},
            store_results={"balance": "balance"},
        ),
        _after_result("balance_display", "Balance: {balance}"),
        _after_result("balance_error", "Unable to retrieve balance. Please try again later."),

        # --- internal transfers
        MenuNode(
            "transfers_menu",
            "Internal Transfers\n1. Transfer to own A/C\n2. Transfer to other A/C\n0. Back",
            choices={
                "1": Choice("own_transfer_source", field="transferType", value="OWNACCOUNT"),
                "2": Choice("other_transfer_account", field="transferType", value="OTHERACCOUNT"),
            },
            back=HOME,
        ),
        _account_picker("own_transfer_source", "Select account to debit", "sourceAccount",
                        "own_transfer_destination", "transfers_menu"),
        _account_picker("own_transfer_destination", "Select account to credit", "destinationAccount",
                        "transfer_amount", "own_transfer_source"),
        InputNode("other_transfer_account", "Enter recipient A/C", field="destinationAccount",
                  validation=ACCOUNT_NO, next="other_transfer_validate", back="transfers_menu"),
        ServiceNode(
            "other_transfer_validate", Operation.VALIDATE_ACCOUNT,
            on_success="other_transfer_source", on_error="transfers_menu",
            params={"accountNumber": "destinationAccount"},
        ),
        _account_picker("other_transfer_source", "Select account to debit", "sourceAccount",
                        "transfer_amount", "transfers_menu"),
        InputNode("transfer_amount", "Enter Amount", field="amount", validation=AMOUNT,
                  next="transfer_remark", back="transfers_menu"),
        InputNode("transfer_remark", "Enter remark", field="remark",
                  validation=ValidationSpec("text", {"max_length": 30}), next="transfer_confirm"),
        MenuNode(
            "transfer_confirm",
            "Confirm transfer\nAmount: {amount}\nTo: {destinationAccount}\nRemark: {remark}\n1. Confirm\n2. Cancel",
            choices={"1": Choice("transfer_pin"), "2": Choice(HOME)},
        ),
        InputNode("transfer_pin", CONFIRM_PIN, field="pin", validation=PIN, next="transfer_result", sensitive=True),
        ServiceNode(
            "transfer_result", Operation.TRANSFER,
            on_success="transfer_success", on_error="transfer_error",
            params={
                "sourceAccount": "sourceAccount",
                "destinationAccount": "destinationAccount",
                "amount": "amount",
                "pin": "pin",
                "remark": "remark",
                "transferType": "transferType",
            },
        ),
        StaticNode("transfer_success", "Transfer of UGX {amount} to {destinationAccount} was successful. " + GOODBYE),
        _after_result("transfer_error", "Transfer failed. Please try again later."),

        # --- mini statement
        _account_picker("statement_menu", "Mini Statement\nSelect account", "sourceAccount", "statement_result", HOME),
        ServiceNode(
            "statement_result", Operation.GET_MINI_STATEMENT,
            on_success="statement_display", on_error="statement_error",
            params={"sourceAccount": "sourceAccount"},
            store_results={"statement": "statement"},
        ),
        _after_result("statement_display", "Mini Statement:\n{statement}"),
        _after_result("statement_error", "Unable to retrieve statement. Please try again later."),

        # --- settings
        MenuNode(
            "settings_menu",
            "Settings\n1. Change PIN\n2. Change Language\n0. Back",
            choices={"1": Choice("change_pin_old"), "2": Choice("change_language")},
            back=HOME,
        ),
        InputNode("change_pin_old", "Enter the old PIN", field="oldPin", validation=PIN,
                  next="change_pin_new", sensitive=True),
        InputNode("change_pin_new", "Enter the new PIN", field="newPin", validation=PIN,
                  next="change_pin_confirm", sensitive=True),
        InputNode("change_pin_confirm", "Re-Enter the new PIN", field="confirmPin", validation=PIN,
                  next="change_pin_result", sensitive=True, confirm_of="newPin"),
        ServiceNode(
            "change_pin_result", Operation.CHANGE_PIN,
            on_success="pin_change_success", on_error="pin_change_error",
            params={"oldPin": "oldPin", "newPin": "newPin", "confirmPin": "confirmPin"},
        ),
        StaticNode("pin_change_success", "PIN changed successfully. Please dial again and log in with your new PIN."),
        _after_result("pin_change_error", "PIN change failed. Please try again later."),
        MenuNode(
            "change_language",
            "Change Language\n1. Runyankore\n2. English\n0. Back",
            choices={
                "1": Choice("language_set", SideEffect.SET_LANGUAGE, value="runyankore"),
                "2": Choice("language_set", SideEffect.SET_LANGUAGE, value="en"),
            },
            back="settings_menu",
        ),
        _after_result("language_set", "Language updated"),
    ]


TRANSLATIONS = {
    "runyankore": {
        ENTRY: "Tushangaire EBO SACCO. Nyamwirra PIN yaawe okukomeza",
        HOME: "1. Kuzana Sent\n2. Tweka Sent\n3. Airtime\n4. Okasasira\n5. Balance\n"
              "6. Okuhinduranya Sent\n7. Mini Statement\n8. Ebyokuhindura\n0. Genda",
        "settings_menu": "Ebyokuhindura\n1. Change PIN\n2. Change Language\n0. Back",
    },
}


def build_graph(validator: Validator = None) -> MenuGraph:
    return MenuGraph(_nodes(), entry=ENTRY, home=HOME, validator=validator, translations=TRANSLATIONS)
