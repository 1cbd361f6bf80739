"""
Configuration management for the transfer TCK.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConfigError

# Verifier policy. The mirror lags consensus by a roughly bounded amount, so a
# fixed delay is enough; 100 * 0.2s stays under the per-test ceiling.
DEFAULT_RETRY_ATTEMPTS = 100
DEFAULT_RETRY_DELAY = 0.2

# Tests should not take longer than 30 seconds to fully execute.
DEFAULT_TEST_TIMEOUT = 30.0
DEFAULT_REQUEST_TIMEOUT = 30.0

PLACEHOLDER_CREDENTIAL = "***"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("true", "1", "yes")


@dataclass
class EndpointConfig:
    """Configuration for a single remote endpoint."""
    name: str
    endpoint: str
    timeout: float = DEFAULT_REQUEST_TIMEOUT


@dataclass
class OperatorConfig:
    """The suite-wide funding and fee-paying account."""
    account_id: Optional[str] = None
    private_key: Optional[str] = None

    @property
    def is_set(self) -> bool:
        return bool(self.account_id) and bool(self.private_key) and (
            PLACEHOLDER_CREDENTIAL not in (self.account_id, self.private_key)
        )


@dataclass
class TckConfig:
    """Main configuration for the TCK."""
    network: str = "local"

    # Endpoints
    json_rpc: EndpointConfig = field(
        default_factory=lambda: EndpointConfig("json-rpc", "http://localhost:8544")
    )
    consensus: EndpointConfig = field(
        default_factory=lambda: EndpointConfig("consensus", "http://localhost:8545")
    )
    mirror: EndpointConfig = field(
        default_factory=lambda: EndpointConfig("mirror", "http://localhost:5551")
    )

    operator: OperatorConfig = field(default_factory=OperatorConfig)

    # Local network topology, forwarded to the SUT's setup call
    node_ip: Optional[str] = None
    node_account_id: Optional[str] = None
    mirror_network: Optional[str] = None

    # Paths
    scenario_dir: str = "scenarios"
    result_dir: str = "results"

    # Execution settings
    stop_on_first_failure: bool = False
    verbose: bool = False

    # Verification policy and timeouts
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    test_timeout: float = DEFAULT_TEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "TckConfig":
        """Load configuration from environment variables."""
        config = cls()

        config.network = os.environ.get("NETWORK", "local")

        timeout = float(os.environ.get("NODE_TIMEOUT", DEFAULT_REQUEST_TIMEOUT))
        rpc_endpoint = os.environ.get("JSON_RPC_SERVER_URL", "http://localhost:8544")
        config.json_rpc = EndpointConfig("json-rpc", rpc_endpoint, timeout)
        config.consensus = EndpointConfig(
            "consensus",
            os.environ.get("CONSENSUS_QUERY_URL", "http://localhost:8545"),
            timeout,
        )
        config.mirror = EndpointConfig(
            "mirror",
            os.environ.get("MIRROR_NODE_REST_URL", "http://localhost:5551"),
            timeout,
        )

        config.operator = OperatorConfig(
            account_id=os.environ.get("OPERATOR_ACCOUNT_ID"),
            private_key=os.environ.get("OPERATOR_ACCOUNT_PRIVATE_KEY"),
        )

        config.node_ip = os.environ.get("NODE_IP")
        config.node_account_id = os.environ.get("NODE_ACCOUNT_ID")
        config.mirror_network = os.environ.get("MIRROR_NETWORK")

        config.scenario_dir = os.environ.get("SCENARIO_DIR", "scenarios")
        config.result_dir = os.environ.get("RESULT_DIR", "results")

        config.retry_attempts = int(
            os.environ.get("TCK_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS)
        )
        config.retry_delay = float(os.environ.get("TCK_RETRY_DELAY", DEFAULT_RETRY_DELAY))
        config.test_timeout = float(os.environ.get("TCK_TEST_TIMEOUT", DEFAULT_TEST_TIMEOUT))

        config.verbose = _env_flag("VERBOSE")
        config.stop_on_first_failure = _env_flag("STOP_ON_FIRST_FAILURE")

        return config

    def validate(self) -> None:
        """Fail early on settings that cannot produce a meaningful run."""
        if self.network not in ("local", "testnet"):
            raise ConfigError(f"unknown network '{self.network}'")
        if self.consensus.endpoint.rstrip("/") == self.json_rpc.endpoint.rstrip("/"):
            # Consensus reads must not go through the SUT.
            raise ConfigError(
                f"CONSENSUS_QUERY_URL must not be the SUT endpoint {self.json_rpc.endpoint}"
            )
        if not self.operator.is_set:
            raise ConfigError(
                "OPERATOR_ACCOUNT_ID and OPERATOR_ACCOUNT_PRIVATE_KEY must be set"
                + (" for testnet" if self.network == "testnet" else "")
            )

