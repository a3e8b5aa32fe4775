import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal
from urllib.parse import parse_qsl, urlsplit
import requests

@dataclass
class PaynowConfig:
    integration_id: str
    integration_key: str
    base_url: str = "https://www.paynow.co.zw/interface"
    timeout: int = 25

class PaynowError(RuntimeError):
    pass

def _format_amount(amount) -> str:
    return f"{Decimal(str(amount)):.2f}"

def build_hash(values: dict, integration_key: str) -> str:
    # Paynow: SHA512 over every value except "hash", in order, then the integration key; uppercase hex
    concat = "".join(str(v) for k, v in values.items() if k.lower() != "hash")
    return hashlib.sha512((concat + integration_key).encode("utf-8")).hexdigest().upper()

def parse_message(body: str) -> dict:
    """Paynow answers with an urlencoded body; keys are case-insensitive."""
    return {k.lower(): v for k, v in parse_qsl(body or "", keep_blank_values=True)}

class PaynowClient:
    def __init__(self, cfg: PaynowConfig):
        self.cfg = cfg

    def is_gateway_url(self, url: str) -> bool:
        """Poll URLs come back from the browser, so only the configured Paynow host is trusted."""
        gateway = urlsplit(self.cfg.base_url)
        target = urlsplit(url or "")
        return (target.scheme.lower(), (target.hostname or "").lower()) == (gateway.scheme.lower(), (gateway.hostname or "").lower())

    def verify(self, values: dict) -> bool:
        received = values.get("hash") or ""
        if not received:
            return False
        expected = build_hash(values, self.cfg.integration_key)
        return hmac.compare_digest(expected, received.upper())

    def _signed(self, fields: dict) -> dict:
        fields = dict(fields)
        fields["hash"] = build_hash(fields, self.cfg.integration_key)
        return fields

    def _post(self, url: str, fields: dict | None = None) -> dict:
        try:
            r = requests.post(url, data=fields or {}, timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise PaynowError(f"Paynow unreachable: {e}") from e
        if r.status_code >= 400:
            raise PaynowError(f"Paynow {r.status_code}: {r.text[:200]}")
        data = parse_message(r.text)
        if not data.get("status"):
            raise PaynowError(f"Unreadable Paynow response: {r.text[:200]}")
        # Error messages are unsigned; everything else must carry a valid hash
        if data["status"].lower() != "error" and not self.verify(data):
            raise PaynowError("Paynow response hash mismatch")
        return data

    def _transaction_fields(self, *, reference: str, email: str, items: list[dict], return_url: str, result_url: str) -> dict:
        total = sum(Decimal(str(i["amount"])) for i in items)
        return {
            "id": self.cfg.integration_id,
            "reference": reference,
            "amount": _format_amount(total),
            "additionalinfo": ", ".join(i["name"] for i in items),
            "returnurl": return_url,
            "resulturl": result_url,
            "authemail": email,
            "status": "Message",
        }

    def initiate(self, *, reference: str, email: str, items: list[dict], return_url: str, result_url: str) -> dict:
        """Web checkout: the customer is redirected to Paynow (browserurl) to pick a payment method."""
        fields = self._transaction_fields(reference=reference, email=email, items=items, return_url=return_url, result_url=result_url)
        return self._post(f"{self.cfg.base_url}/initiatetransaction", self._signed(fields))

    def initiate_mobile(self, *, reference: str, email: str, phone: str, items: list[dict], return_url: str, result_url: str, method: str = "ecocash") -> dict:
        """Express checkout: Paynow pushes a USSD prompt to the phone; there is no browserurl."""
        fields = self._transaction_fields(reference=reference, email=email, items=items, return_url=return_url, result_url=result_url)
        fields.pop("status")
        fields.update({"phone": phone, "method": method, "status": "Message"})
        return self._post(f"{self.cfg.base_url}/remotetransaction", self._signed(fields))

    def poll(self, poll_url: str) -> dict:
        return self._post(poll_url)
