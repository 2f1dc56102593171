"""subnetctl constants: networks, on-disk layout, environment variables."""

NETWORK_LOCAL = "local"
NETWORK_TESTNET = "testnet"
NETWORK_MAINNET = "mainnet"
NETWORKS = (NETWORK_LOCAL, NETWORK_TESTNET, NETWORK_MAINNET)
PUBLIC_NETWORKS = {NETWORK_TESTNET, NETWORK_MAINNET}

STATE_UNDEPLOYED = "undeployed"
STATE_DEPLOYED = "deployed"
STATE_ELASTIC = "elastic"

VM_TYPE_CUSTOM = "custom"
VM_TYPE_STANDARD = "standard"
VM_TYPE_REGISTERED = "registered"
STANDARD_VM_KINDS = {"subnet-evm"}
DEFAULT_STANDARD_VM = "subnet-evm"
LATEST = "latest"

TX_CHAIN_CREATION = "chain-creation"
TX_ADD_VALIDATOR = "add-validator"
TX_REMOVE_VALIDATOR = "remove-validator"
TX_TRANSFORM_ELASTIC = "transform-elastic"
TX_KINDS = {TX_CHAIN_CREATION, TX_ADD_VALIDATOR, TX_REMOVE_VALIDATOR, TX_TRANSFORM_ELASTIC}
# Submitted online only; never written to a transaction file.
TX_SUBNET_CREATION = "subnet-creation"
TX_ADD_PERMISSIONLESS_VALIDATOR = "add-permissionless-validator"

TX_STATUS_PROPOSED = "proposed"
TX_STATUS_PARTIALLY_SIGNED = "partially-signed"
TX_STATUS_READY = "ready-to-commit"
TX_STATUS_COMMITTED = "committed"
TX_FILE_VERSION = 1

# Layout under the base directory.
SUBNETS_DIR = "subnets"
VMS_DIR = "vms"
KEYS_DIR = "keys"
REPOS_DIR = "repos"
SIDECAR_FILE = "sidecar.json"
GENESIS_FILE = "genesis.json"
GENESIS_MAINNET_FILE = "genesis_mainnet.json"
CHAIN_CONFIG_FILE = "chain.json"
PER_NODE_CHAIN_CONFIG_FILE = "per-node-chain.json"
ELASTIC_CONFIG_FILE = "elastic_subnet_config.json"
COMPATIBILITY_CACHE_FILE = "compatibility.json"
CONFIG_FILE = "config.toml"
KEY_SUFFIX = ".pk"

DEFAULT_HOME_DIRNAME = ".subnetctl"
DEFAULT_NODE_BINARY = "subnet-node-ctl"
DEFAULT_KEYTOOL = "subnet-keytool"
DEFAULT_VM_COMPATIBILITY_URL = "https://raw.githubusercontent.com/ava-labs/subnet-evm/master/compatibility.json"
DEFAULT_RUNTIME_COMPATIBILITY_URL = "https://raw.githubusercontent.com/ava-labs/avalanchego/master/version/compatibility.json"
DEFAULT_COMPATIBILITY_TTL = 3600

ENV_HOME = "SUBNETCTL_HOME"
ENV_NODE_BINARY = "SUBNETCTL_NODE_BINARY"
ENV_KEYTOOL = "SUBNETCTL_KEYTOOL"
ENV_VM_COMPATIBILITY_URL = "SUBNETCTL_VM_COMPATIBILITY_URL"
ENV_RUNTIME_COMPATIBILITY_URL = "SUBNETCTL_RUNTIME_COMPATIBILITY_URL"
ENV_SIMULATE_PUBLIC = "SUBNETCTL_SIMULATE_PUBLIC_NETWORK"

# Default elastic staking parameters (amounts in the token's smallest unit).
ELASTIC_DEFAULTS = {
    "initial_supply": 240_000_000,
    "max_supply": 720_000_000,
    "min_stake": 2_000,
    "max_stake": 3_000_000,
    "min_stake_duration": 14 * 24 * 3600,
    "max_stake_duration": 365 * 24 * 3600,
    "min_delegation_fee": 20_000,
    "min_delegator_stake": 25,
    "max_validator_weight_factor": 5,
    "uptime_requirement": 800_000,
}

MIN_STAKING_PERIOD = 24 * 3600
