"""
Admin request boundary for the manual scan.

Three request kinds, all requiring an authenticated operator with the admin capability and a
valid anti-forgery token bound to the session:
    - get_theme_files: lists the template files and clears the pending alert
    - check_theme_file: scans one template file
    - update_white_list: accepts a fingerprint into the whitelist

Any refused or invalid request yields no data.
"""

import html
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

import config
from errors import AccessDenied, AntiVirusError, InvalidFingerprint
from theme_scanner import ThemeScanOrchestrator
from whitelist_store import WhitelistStore, is_valid_fingerprint

logger = logging.getLogger(__name__)

ADMIN_CAPABILITY = "manage_options"
TOKEN_ACTION = "av_ajax_nonce"


def _serializer(secret: bytes) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret, salt=TOKEN_ACTION)


def make_token(session_id: str, secret: bytes) -> str:
    """Signed, timestamped token bound to the session"""
    return _serializer(secret).dumps({"sid": session_id})


def verify_token(token: str, session_id: str, secret: bytes, ttl: Optional[int] = None) -> bool:
    if not token:
        return False
    max_age = ttl if ttl is not None else config.get_token_ttl()
    try:
        data = _serializer(secret).loads(token, max_age=max_age)
    except SignatureExpired:
        return False
    except BadSignature:
        return False
    return isinstance(data, dict) and data.get("sid") == session_id


@dataclass
class Operator:
    name: str
    authenticated: bool = False
    capabilities: List[str] = field(default_factory=list)

    def can(self, capability: str) -> bool:
        return self.authenticated and capability in self.capabilities


@dataclass
class AdminRequest:
    action: str
    operator: Operator
    session_id: str
    token: str
    params: Dict[str, Any] = field(default_factory=dict)


class AdminRequestHandler:
    def __init__(
        self,
        theme_scanner: ThemeScanOrchestrator,
        whitelist: WhitelistStore,
        secret: Optional[bytes] = None,
        ttl: Optional[int] = None,
    ):
        self.theme_scanner = theme_scanner
        self.whitelist = whitelist
        self.secret = secret or config.get_token_secret()
        self.ttl = ttl if ttl is not None else config.get_token_ttl()

    def issue_token(self, session_id: str) -> str:
        return make_token(session_id, self.secret)

    def _authorize(self, request: AdminRequest) -> None:
        if not verify_token(request.token, request.session_id, self.secret, self.ttl):
            raise AccessDenied("Invalid or expired anti-forgery token")
        if not request.operator.can(ADMIN_CAPABILITY):
            raise AccessDenied(f"{request.operator.name} lacks {ADMIN_CAPABILITY}")

    def get_theme_files(self, params: Dict[str, Any]) -> List[Any]:
        return self.theme_scanner.list_files()

    def check_theme_file(self, params: Dict[str, Any]) -> List[Any]:
        path = params.get("theme_file")
        if not path:
            return []
        return [
            [match.line_number, html.escape(match.matched_text, quote=True), match.fingerprint]
            for match in self.theme_scanner.scan_file(path)
        ]

    def update_white_list(self, params: Dict[str, Any]) -> List[Any]:
        value = params.get("file_md5")
        if not is_valid_fingerprint(value):
            raise InvalidFingerprint(f"Rejected fingerprint: {value!r}")
        self.whitelist.add(value)
        return [value]

    def handle(self, request: AdminRequest) -> Optional[Dict[str, Any]]:
        """Dispatches the request. None means nothing is sent back."""
        actions = {
            "get_theme_files": self.get_theme_files,
            "check_theme_file": self.check_theme_file,
            "update_white_list": self.update_white_list,
        }

        try:
            self._authorize(request)
            action = actions.get(request.action)
            if action is None:
                return None
            values = action(request.params)
        except AccessDenied as e:
            logger.warning(f"Request refused: {e}")
            return None
        except AntiVirusError as e:
            logger.info(f"Request rejected: {e}")
            return None

        if not values:
            return None

        response = {"data": values, "nonce": request.token}
        if request.action == "check_theme_file":
            accepted = set(self.whitelist.all())
            response["whitelisted"] = [v[2] for v in values if v[2] in accepted]
        return response
