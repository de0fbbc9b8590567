"""
Sesión local del usuario (colaborador de autenticación del motor de sync).

El access token lo emite el backend remoto durante el login (fuera de
este paquete). Acá solo se guarda y se lee:
- en memoria, y opcionalmente en un archivo para sobrevivir reinicios
- get_user_id() decodifica el claim "sub" sin verificar la firma (la
  verifica el backend en cada request) pero sí la expiración
"""

import inspect
import logging
from pathlib import Path
from typing import Awaitable, Callable

import jwt

logger = logging.getLogger(__name__)

SignOutHook = Callable[[], Awaitable[object] | object]


class SessionStore:

    def __init__(self, token_path: Path | None = None):
        self._token_path = token_path
        self._token: str | None = None
        self._sign_out_hooks: list[SignOutHook] = []
        self._load()

    # ── Token ────────────────────────────────────────

    def _load(self) -> None:
        if self._token_path is None or not self._token_path.exists():
            return
        token = self._token_path.read_text(encoding="utf-8").strip()
        self._token = token or None

    def set_token(self, token: str) -> None:
        self._token = token
        if self._token_path is not None:
            self._token_path.parent.mkdir(parents=True, exist_ok=True)
            self._token_path.write_text(token, encoding="utf-8")
        logger.info(f"Sesión iniciada para usuario {self.get_user_id()}")

    def get_access_token(self) -> str | None:
        return self._token

    def get_user_id(self) -> str | None:
        """Usuario de la sesión, o None si no hay token o expiró."""
        if not self._token:
            return None
        try:
            payload = jwt.decode(
                self._token,
                options={"verify_signature": False, "verify_exp": True},
                algorithms=["HS256", "RS256", "ES256"],
            )
        except jwt.ExpiredSignatureError:
            logger.info("El access token expiró")
            return None
        except jwt.InvalidTokenError as exc:
            logger.warning(f"Access token inválido: {exc}")
            return None
        return payload.get("sub")

    # ── Cierre de sesión ─────────────────────────────

    def on_sign_out(self, hook: SignOutHook) -> None:
        """Registra una acción a ejecutar al cerrar sesión."""
        self._sign_out_hooks.append(hook)

    async def sign_out(self) -> None:
        """Borra el token y ejecuta los hooks (cancelar sync, vaciar cola)."""
        user_id = self.get_user_id()
        self._token = None
        if self._token_path is not None:
            self._token_path.unlink(missing_ok=True)

        for hook in self._sign_out_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

        logger.info(f"Sesión cerrada para usuario {user_id}")
