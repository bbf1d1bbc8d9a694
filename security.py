"""
Seguridad básica: TLS para la API de control + autenticación JWT.
La generación de certificados queda fuera del starter.
"""
import ssl
import jwt
import time
from typing import Optional, Dict
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class SecurityManager:
    """Gestiona TLS y autenticación JWT entre starters."""

    JWT_ALGORITHM = "HS256"
    JWT_ISSUER = "starter"
    TOKEN_EXPIRY = 3600  # 1 hora

    def __init__(
        self,
        enable_tls: bool = False,
        cert_dir: Optional[Path] = None,
        jwt_secret: Optional[str] = None
    ):
        self.enable_tls = enable_tls
        self.cert_dir = Path(cert_dir) if cert_dir else Path("certs")
        self.jwt_secret = jwt_secret or None
        self.ssl_context: Optional[ssl.SSLContext] = None

        if enable_tls:
            self._setup_tls()

    def _setup_tls(self):
        """Configura SSL context con certificados existentes."""
        cert_file = self.cert_dir / "server.crt"
        key_file = self.cert_dir / "server.key"

        if not (cert_file.exists() and key_file.exists()):
            logger.warning(
                f"Certificados no encontrados en {self.cert_dir}. "
                "Genera con: openssl req -x509 -newkey rsa:4096 -nodes "
                "-keyout server.key -out server.crt -days 365"
            )
            self.enable_tls = False
            return

        try:
            context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
            context.load_cert_chain(cert_file, key_file)
        except (ssl.SSLError, OSError) as e:
            logger.error(f"Error configurando TLS: {e}")
            self.enable_tls = False
            return

        self.ssl_context = context
        logger.info("TLS habilitado con certificados")

    @property
    def is_secure(self) -> bool:
        return self.enable_tls and self.ssl_context is not None

    @property
    def auth_required(self) -> bool:
        return self.jwt_secret is not None

    def generate_token(self, peer_id: str = "", metadata: Optional[Dict] = None) -> str:
        """Genera JWT para autenticar llamadas a otro starter."""
        if not self.jwt_secret:
            raise ValueError("No hay JWT secret configurado")

        now = time.time()
        payload = {
            "iss": self.JWT_ISSUER,
            "peer_id": peer_id,
            "iat": now,
            "exp": now + self.TOKEN_EXPIRY
        }
        if metadata:
            payload.update(metadata)

        return jwt.encode(payload, self.jwt_secret, algorithm=self.JWT_ALGORITHM)

    def verify_token(self, token: str) -> Optional[Dict]:
        """Verifica y decodifica JWT. Retorna None si no es válido."""
        if not self.jwt_secret:
            return None
        try:
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.JWT_ALGORITHM],
                issuer=self.JWT_ISSUER
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Token expirado")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Token inválido: {e}")
            return None

    def verify_authorization_header(self, header: Optional[str]) -> bool:
        """
        Verifica un header Authorization de la forma 'bearer <jwt>'.
        Sin secret configurado cualquier petición es aceptada.
        """
        if not self.auth_required:
            return True
        if not header:
            return False
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return False
        return self.verify_token(token.strip()) is not None

    def get_ssl_context(self) -> Optional[ssl.SSLContext]:
        """Retorna SSL context para aiohttp."""
        return self.ssl_context if self.is_secure else None
