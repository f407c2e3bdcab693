import re
from dataclasses import dataclass
from typing import List, Mapping

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile(r"[^A-Za-z0-9]")

BCRYPT_MAX_BYTES = 72


@dataclass(frozen=True)
class PasswordPolicy:
    min_len: int = 8
    max_len: int = 128
    require_upper: bool = False
    require_lower: bool = False
    require_digit: bool = True
    require_symbol: bool = False

    @classmethod
    def from_config(cls, config: Mapping) -> "PasswordPolicy":
        defaults = cls()
        return cls(
            min_len=int(config.get("PASSWORD_MIN_LEN", defaults.min_len)),
            max_len=int(config.get("PASSWORD_MAX_LEN", defaults.max_len)),
            require_upper=bool(config.get("PASSWORD_REQUIRE_UPPER", defaults.require_upper)),
            require_lower=bool(config.get("PASSWORD_REQUIRE_LOWER", defaults.require_lower)),
            require_digit=bool(config.get("PASSWORD_REQUIRE_DIGIT", defaults.require_digit)),
            require_symbol=bool(config.get("PASSWORD_REQUIRE_SYMBOL", defaults.require_symbol)),
        )

    def violations(self, pw) -> List[str]:
        """Empty list means the password is acceptable."""
        if not isinstance(pw, str):
            return ["Password must be a string"]

        errors: List[str] = []
        if len(pw) < self.min_len:
            errors.append(f"Password must be at least {self.min_len} characters")
        if len(pw) > self.max_len:
            errors.append(f"Password must be at most {self.max_len} characters")
        elif len(pw.encode("utf-8")) > BCRYPT_MAX_BYTES:
            # bcrypt refuses longer input; multibyte characters count more than once
            errors.append(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")

        if self.require_upper and not _UPPER.search(pw):
            errors.append("Password must include at least 1 uppercase letter")
        if self.require_lower and not _LOWER.search(pw):
            errors.append("Password must include at least 1 lowercase letter")
        if self.require_digit and not _DIGIT.search(pw):
            errors.append("Password must include at least 1 number")
        if self.require_symbol and not _SYMBOL.search(pw):
            errors.append("Password must include at least 1 symbol")

        return errors
