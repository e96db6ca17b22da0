from itsdangerous import URLSafeSerializer, BadSignature
from typing import Optional
from .config import get_settings

CONTEXT_FIELDS = ("member_id", "member_name", "board_id")

def get_serializer(secret: str | None = None) -> URLSafeSerializer:
    return URLSafeSerializer(secret or get_settings().app_secret, salt="context")

def sign_context(data: dict, secret: str | None = None) -> str:
    payload = {k: data[k] for k in CONTEXT_FIELDS}
    return get_serializer(secret).dumps(payload)

def verify_context(token: str, secret: str | None = None) -> Optional[dict]:
    try:
        data = get_serializer(secret).loads(token)
    except BadSignature:
        return None
    if not isinstance(data, dict) or any(not data.get(k) for k in ("member_id", "board_id")):
        return None
    return data
