import re
from typing import List
from data_classes import ScanRule

# function names that show up in nearly every theme backdoor
SUSPICIOUS_FUNCTIONS = [
    "assert",
    "base64_decode",
    "create_function",
    "curl_exec",
    "eval",
    "exec",
    "file_get_contents",
    "fsockopen",
    "gzdeflate",
    "gzinflate",
    "gzuncompress",
    "move_uploaded_file",
    "passthru",
    "pcntl_exec",
    "popen",
    "proc_open",
    "shell_exec",
    "str_rot13",
    "system",
    "unserialize",
]

# options a template has no business reading
INTERNAL_OPTIONS = {
    "active_plugins",
    "admin_email",
    "auth_key",
    "auth_salt",
    "default_role",
    "logged_in_key",
    "nonce_key",
    "recently_activated",
    "secure_auth_key",
    "upload_path",
    "users_can_register",
    "wp_user_roles",
}

TRUSTED_SCRIPT_HOSTS = [
    "ajax.googleapis.com",
    "cdnjs.cloudflare.com",
    "code.jquery.com",
    "fonts.googleapis.com",
    "s.w.org",
    "stats.wp.com",
    "www.google.com",
    "www.gstatic.com",
]

PERMALINK_RULE = ScanRule(
    name="permalink_code",
    regex=r"([$(){};?`]|\\x[0-9a-f]{2})",
    description="Code-like characters in the permalink structure",
    flags=re.IGNORECASE,
)


class PatternRegistry:
    """
    A registry for the heuristic rules used to scan template files.

    Holds an ordered list of ScanRule objects; the scanner applies all of them to every line.

    Add further ScanRules as desired, the scan loop does not need to change.
    """

    def __init__(self):
        self.rules = self._load_default_rules()

    def _load_default_rules(self) -> List[ScanRule]:
        """
        Loads the default ScanRules.

        NOTE: these are heuristics, not signatures. Every hit is meant to be reviewed by a human
              and accepted into the whitelist if harmless.
        """

        trusted_hosts = "|".join(re.escape(host) for host in TRUSTED_SCRIPT_HOSTS)

        return [
            ScanRule(
                name="suspicious_function",
                regex=r"(?<![\w$>:\\-])("
                + "|".join(SUSPICIOUS_FUNCTIONS)
                + r")\s*\(",
                description="Call of a function commonly abused by backdoors",
            ),
            ScanRule(
                name="encoded_execution",
                regex=r"((?:eval|assert)\s*\(\s*(?:gzinflate|gzuncompress|str_rot13|base64_decode|strrev|rawurldecode)\s*\()",
                description="Execution of a dynamically decoded string",
            ),
            ScanRule(
                name="superglobal_execution",
                regex=r"((?:eval|assert|system|exec|passthru|shell_exec)\s*\(\s*(?:stripslashes\s*\(\s*)?\$_(?:GET|POST|REQUEST|COOKIE|SERVER)\b)",
                description="Execution of request-supplied code",
            ),
            ScanRule(
                name="superglobal_callable",
                regex=r"(\$_(?:GET|POST|REQUEST|COOKIE)\s*\[[^\]]*\]\s*\()",
                description="Request variable called as a function",
            ),
            ScanRule(
                name="preg_replace_eval",
                regex=r"(preg_replace\s*\(\s*['\"]([^\w\s\\]).*?\2[a-zA-Z]*e[a-zA-Z]*['\"])",
                description="preg_replace with the code-evaluating /e modifier",
            ),
            ScanRule(
                name="iframe",
                regex=r"<\s*?(i?frame)",
                description="Embedded (i)frame",
            ),
            ScanRule(
                name="remote_script",
                regex=r"(<script[^>]+src\s*=\s*['\"]?(?:https?:)?//(?!(?:"
                + trusted_hosts
                + r")[/'\"])[^'\"\s>]+)",
                description="Script included from an untrusted remote host",
                flags=re.IGNORECASE,
            ),
            ScanRule(
                name="internal_option",
                regex=r"get_option\s*\(\s*['\"](.*?)['\"]\s*\)",
                description="Template reads an internal option",
                accept=lambda option: option in INTERNAL_OPTIONS,
            ),
            ScanRule(
                name="hex_escape",
                regex=r"((?:\\x[0-9a-f]{2}){8,})",
                description="Long run of hex escaped characters",
                flags=re.IGNORECASE,
            ),
            ScanRule(
                name="base64_blob",
                regex=r"(['\"][A-Za-z0-9+/]{200,}={0,2}['\"])",
                description="Long base64 encoded string literal",
            ),
            ScanRule(
                name="malware_marker",
                regex=r"(wp-vcd|/\*<\?php\*/|FilesMan|c99shell|r57shell|WSOsetcookie)",
                description="Known malware marker",
            ),
        ]

    def add_rule(self, rule: ScanRule):
        if not isinstance(rule, ScanRule):
            raise TypeError("Rule must be a ScanRule instance.")
        self.rules.append(rule)

    def get_rules(self) -> List[ScanRule]:
        return self.rules
