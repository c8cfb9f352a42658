import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


NETWORK_DEFAULTS = {
    "MainNet": {
        "rpc_url": "https://seed1.cityofzion.io:443",
        "neoscan_url": "https://api.neoscan.io/api/main_net",
        "aph_api_url": "https://mainnet.aphelion-neo.com:62443/api",
    },
    "TestNet": {
        "rpc_url": "https://test1.cityofzion.io:443",
        "neoscan_url": "https://neoscan-testnet.io/api/test_net",
        "aph_api_url": "https://testnet.aphelion-neo.com:62443/api",
    },
}


@dataclass
class Config:
    """Application configuration."""

    network: str = "MainNet"

    # API URLs
    rpc_url: str = NETWORK_DEFAULTS["MainNet"]["rpc_url"]
    neoscan_url: str = NETWORK_DEFAULTS["MainNet"]["neoscan_url"]
    aph_api_url: str = NETWORK_DEFAULTS["MainNet"]["aph_api_url"]
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"

    # API Keys
    coingecko_api_key: Optional[str] = None

    # Display settings
    currency: str = "USD"

    # Request settings
    request_timeout: float = 10.0
    rate_limit_delay: float = 0.0  # seconds after each API call

    # Workflow timings (seconds)
    confirmation_initial_delay: float = 15.0
    confirmation_poll_interval: float = 1.0
    confirmation_refresh_every: int = 10  # polls between history refreshes
    callback_delay: float = 5.0
    claim_settle_delay: float = 30.0
    claim_interval: float = 5 * 60.0

    @classmethod
    def for_network(cls, network: str, **overrides) -> "Config":
        """Create a config with the endpoint defaults of a network."""
        if network not in NETWORK_DEFAULTS:
            raise ValueError(
                f"Unknown network '{network}', expected one of {', '.join(NETWORK_DEFAULTS)}")
        values = dict(NETWORK_DEFAULTS[network])
        values.update(overrides)
        return cls(network=network, **values)

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        network = os.getenv("NEO_NETWORK", "MainNet")
        if network not in NETWORK_DEFAULTS:
            raise ValueError(
                f"NEO_NETWORK must be one of {', '.join(NETWORK_DEFAULTS)}, got '{network}'")
        defaults = NETWORK_DEFAULTS[network]

        return cls(
            network=network,
            rpc_url=os.getenv("NEO_RPC_URL", defaults["rpc_url"]),
            neoscan_url=os.getenv("NEOSCAN_URL", defaults["neoscan_url"]),
            aph_api_url=os.getenv("APH_API_URL", defaults["aph_api_url"]),
            coingecko_base_url=os.getenv(
                "COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"),
            coingecko_api_key=os.getenv("COINGECKO_API_KEY"),
            currency=os.getenv("DISPLAY_CURRENCY", "USD").upper(),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "10")),
            rate_limit_delay=float(os.getenv("RATE_LIMIT_DELAY", "0")),
            confirmation_initial_delay=float(
                os.getenv("CONFIRMATION_INITIAL_DELAY", "15")),
            confirmation_poll_interval=float(
                os.getenv("CONFIRMATION_POLL_INTERVAL", "1")),
            confirmation_refresh_every=int(
                os.getenv("CONFIRMATION_REFRESH_EVERY", "10")),
            callback_delay=float(os.getenv("CALLBACK_DELAY", "5")),
            claim_settle_delay=float(os.getenv("CLAIM_SETTLE_DELAY", "30")),
            claim_interval=float(os.getenv("CLAIM_INTERVAL", "300")),
        )
