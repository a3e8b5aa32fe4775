from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.core.config import settings
from app.core.security import decode_token
from app.models.user import User
from app.services.paynow_client import PaynowClient, PaynowConfig
from app.services.payment_providers import PaynowAdapter, StripeAdapter

bearer = HTTPBearer(auto_error=False)

def _user_from_token(db: Session, token: str) -> User:
    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("sub")
    user = db.get(User, user_id) if user_id else None
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user

def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _user_from_token(db, creds.credentials)

def get_optional_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User | None:
    """No header means anonymous; a bad token is still rejected."""
    if not creds:
        return None
    return _user_from_token(db, creds.credentials)

def get_paynow_adapter() -> PaynowAdapter:
    if not (settings.PAYNOW_INTEGRATION_ID and settings.PAYNOW_INTEGRATION_KEY):
        raise HTTPException(status_code=500, detail="Paynow is not configured (missing env vars)")
    result_url = f"{settings.API_PUBLIC_URL.rstrip('/')}/api/v1/webhooks/paynow" if settings.API_PUBLIC_URL else ""
    return PaynowAdapter(
        PaynowClient(PaynowConfig(
            integration_id=settings.PAYNOW_INTEGRATION_ID,
            integration_key=settings.PAYNOW_INTEGRATION_KEY,
            base_url=settings.PAYNOW_BASE_URL.rstrip("/"),
            timeout=settings.PAYNOW_TIMEOUT,
        )),
        result_url=result_url,
    )

def get_stripe_adapter() -> StripeAdapter:
    if not settings.STRIPE_SECRET_KEY:
        raise HTTPException(status_code=500, detail="Stripe is not configured (missing env vars)")
    return StripeAdapter(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        api_version=settings.STRIPE_API_VERSION,
    )

def get_payment_adapters() -> dict:
    """Adapters for every configured provider, keyed by provider tag."""
    adapters = {}
    if settings.PAYNOW_INTEGRATION_ID and settings.PAYNOW_INTEGRATION_KEY:
        adapters["paynow"] = get_paynow_adapter()
    if settings.STRIPE_SECRET_KEY:
        adapters["stripe"] = get_stripe_adapter()
    return adapters
