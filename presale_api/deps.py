from fastapi import Depends, Header, HTTPException
from presale_api.errors import PresaleError
from presale_api.settings import Settings


def get_settings() -> Settings:
    return Settings()


def require_api_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    # API_KEY 미설정이면 auth 비활성화
    if not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_buyer_email(x_user_email: str | None = Header(default=None, alias="X-User-Email")) -> str:
    # 세션/인증은 앞단에서 처리하고 이메일만 헤더로 전달받는다
    email = (x_user_email or "").strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return email


def http_error(exc: PresaleError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))
