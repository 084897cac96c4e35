import os
from enum import Enum

from dotenv import load_dotenv

load_dotenv()


class CodeMode(str, Enum):
    GENERATED = "generated"
    DECLARED = "declared"


class PairingFlow(str, Enum):
    SINGLE_STEP = "single_step"
    TWO_STEP = "two_step"
    BOTH = "both"


class ReconnectPolicy(str, Enum):
    IMMEDIATE = "immediate"
    GRACE = "grace"


class SharerReconnectCode(str, Enum):
    KEEP = "keep"
    REGENERATE = "regenerate"


class Settings:
    """Runtime settings read from the environment (and .env).

    Keyword overrides win over the environment, which keeps tests isolated.
    """

    def __init__(self, **overrides):
        self.HOST = os.getenv("HOST", "0.0.0.0")
        self.PORT = int(os.getenv("PORT", 8080))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.CODE_MODE = os.getenv("CODE_MODE", CodeMode.GENERATED.value)
        self.PAIRING_FLOW = os.getenv("PAIRING_FLOW", PairingFlow.BOTH.value)
        self.RECONNECT_POLICY = os.getenv("RECONNECT_POLICY", ReconnectPolicy.GRACE.value)
        self.GRACE_PERIOD_SECONDS = float(os.getenv("GRACE_PERIOD_SECONDS", 300))
        self.REAP_INTERVAL_SECONDS = float(os.getenv("REAP_INTERVAL_SECONDS", 60))
        self.SHARER_RECONNECT_CODE = os.getenv("SHARER_RECONNECT_CODE", SharerReconnectCode.KEEP.value)
        self.CODE_MAX_ATTEMPTS = int(os.getenv("CODE_MAX_ATTEMPTS", 100))
        self.KEEPALIVE_SECONDS = float(os.getenv("KEEPALIVE_SECONDS", 30))

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise ValueError(f"Unknown setting: {key}")
            setattr(self, key, value)

        # Enum coercion raises ValueError for unsupported values
        self.CODE_MODE = CodeMode(self.CODE_MODE)
        self.PAIRING_FLOW = PairingFlow(self.PAIRING_FLOW)
        self.RECONNECT_POLICY = ReconnectPolicy(self.RECONNECT_POLICY)
        self.SHARER_RECONNECT_CODE = SharerReconnectCode(self.SHARER_RECONNECT_CODE)

        if self.CODE_MAX_ATTEMPTS < 1:
            raise ValueError("CODE_MAX_ATTEMPTS must be at least 1")

    @property
    def eager_pairing(self) -> bool:
        return self.PAIRING_FLOW in (PairingFlow.SINGLE_STEP, PairingFlow.BOTH)

    @property
    def explicit_pairing(self) -> bool:
        return self.PAIRING_FLOW in (PairingFlow.TWO_STEP, PairingFlow.BOTH)


settings = Settings()
