from datetime import datetime, timedelta, timezone
from fastapi import Request
import jwt

from app.configuration.settings import Configuration
from app.core.exceptions.app_exception import AppHttpException

configuration = Configuration()

ADMIN_ROLES = ("admin", "employee")


class AdminAuth:
    """
    Valida o token do painel administrativo a cada requisição.

    O token é emitido pelo serviço de login e chega explicitamente no
    cabeçalho Authorization (ou no parâmetro ?token= dos websockets).
    """

    def __init__(self, secret_key: str = None):
        self.secret_key = secret_key or configuration.secret_key

    def generate_token(self, subject: str, role: str = "admin", hours: int = 12) -> str:
        expiration = datetime.now(timezone.utc) + timedelta(hours=hours)
        payload = {"sub": subject, "role": role, "exp": expiration}
        return jwt.encode(payload, self._key(), algorithm="HS256")

    def _key(self) -> str:
        if not self.secret_key:
            raise AppHttpException(status_code=503, detail="Autenticação administrativa não configurada")
        return self.secret_key

    def decode_admin_token(self, token: str) -> dict:
        if not token:
            raise AppHttpException(status_code=401, detail="Acesso não autorizado")
        try:
            payload = jwt.decode(token, self._key(), algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            raise AppHttpException(status_code=401, detail="Token expirado")
        except jwt.InvalidTokenError:
            raise AppHttpException(status_code=401, detail="Token inválido")

        if payload.get("role") not in ADMIN_ROLES:
            raise AppHttpException(status_code=403, detail="Acesso restrito ao sistema de gerenciamento")
        return payload

    def get_current_admin(self, request: Request) -> dict:
        authorization: str = request.headers.get("Authorization")
        if not authorization:
            raise AppHttpException(status_code=401, detail="Acesso não autorizado")

        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AppHttpException(status_code=401, detail="Formato de autenticação inválido")

        return self.decode_admin_token(parts[1])
