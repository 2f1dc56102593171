"""subnetctl command line."""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from rich.console import Console
from rich.table import Table

from .config import SETTING_KEYS, RuntimeContext, config_path, load_config, resolve_context, set_defaults
from .constants import (
    DEFAULT_STANDARD_VM,
    ELASTIC_DEFAULTS,
    LATEST,
    MIN_STAKING_PERIOD,
    NETWORK_LOCAL,
    NETWORK_MAINNET,
    NETWORK_TESTNET,
)
from .deploy import DeploymentOrchestrator, OperationResult
from .errors import ExternalOperationError, SubnetError
from .keys import KeyStore
from .layout import Layout
from .logs import configure_logging
from .models import CustomVM, ElasticConfig, StandardVM, vm_type_name
from .node import CliControlPlane
from .prompts import ask_confirmation, never_confirm
from .publisher import DirectoryPublisher
from .sidecar import SidecarStore
from .subnet import SubnetConfigManager
from .txn import TransactionWorkflow
from .versions import VersionResolver, load_compatibility

console = Console()


@dataclass
class _Services:
    ctx: RuntimeContext
    layout: Layout
    store: SidecarStore
    keys: KeyStore
    subnets: SubnetConfigManager
    orchestrator: DeploymentOrchestrator
    workflow: TransactionWorkflow


def _services(args: argparse.Namespace) -> _Services:
    ctx = resolve_context(simulate_public=args.simulate_public)
    layout = Layout(ctx.base_dir)
    store = SidecarStore(layout)
    keys = KeyStore(layout.keys_dir, ctx.keytool)
    control_plane = CliControlPlane(ctx.node_binary)
    resolver = VersionResolver(
        lambda: load_compatibility(
            ctx.vm_compatibility_url,
            ctx.runtime_compatibility_url,
            layout.compatibility_cache,
            ctx.compatibility_ttl,
        )
    )
    workflow = TransactionWorkflow(store, keys, control_plane)
    subnets = SubnetConfigManager(
        layout,
        store,
        resolver=resolver,
        publisher=DirectoryPublisher(layout.repos_dir),
        confirm=ask_confirmation if sys.stdin.isatty() else never_confirm,
    )
    orchestrator = DeploymentOrchestrator(layout, store, resolver, keys, control_plane, workflow)
    return _Services(ctx, layout, store, keys, subnets, orchestrator, workflow)


def _split(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _default_start_time() -> str:
    return (datetime.now(timezone.utc) + timedelta(minutes=5)).replace(microsecond=0).isoformat()


def _fee_key(args: argparse.Namespace, svc: _Services) -> str | None:
    return args.key or svc.ctx.default_key


def _report(result: OperationResult) -> None:
    if result.committed:
        print(f"Committed on {result.network}")
        for key, value in sorted(result.details.items()):
            if isinstance(value, (str, int)) and value != "":
                print(f"  {key}: {value}")
    else:
        print(f"Transaction written to {result.tx_path}")
        print("Collect the remaining signatures with `subnetctl sign`, then run `subnetctl commit`.")


def _cmd_create(args: argparse.Namespace) -> int:
    svc = _services(args)
    if args.custom_vm:
        vm = CustomVM(binary=args.custom_vm)
    else:
        vm = StandardVM(kind=DEFAULT_STANDARD_VM, version=args.vm_version or LATEST)
    sidecar = svc.subnets.create(
        args.name,
        vm,
        args.genesis,
        force=args.force,
        genesis_mainnet_source=args.genesis_mainnet,
        token_name=args.token_name or "",
    )
    print(f"Created subnet {sidecar.name} ({vm_type_name(sidecar.vm)} VM, protocol {sidecar.rpc_version})")
    return 0


def _cmd_configure(args: argparse.Namespace) -> int:
    svc = _services(args)
    written = svc.subnets.configure(args.name, args.chain_config, args.per_node_chain_config)
    for path in written:
        print(f"Wrote {path}")
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    svc = _services(args)
    if svc.subnets.delete(args.name, force=args.force):
        print(f"Deleted subnet {args.name}")
    else:
        print("Delete cancelled")
    return 0


def _cmd_import(args: argparse.Namespace) -> int:
    svc = _services(args)
    sidecar = svc.subnets.import_subnet(args.repo, args.subnet, name=args.name)
    print(f"Imported subnet {sidecar.name} from {args.repo}")
    return 0


def _cmd_deploy(args: argparse.Namespace) -> int:
    svc = _services(args)
    result = svc.orchestrator.deploy(
        args.name,
        args.network,
        simulate_public=svc.ctx.simulate_public,
        runtime_version=args.runtime_version,
        control_keys=_split(args.control_keys),
        threshold=args.threshold,
        auth_keys=_split(args.auth_keys),
        fee_key=_fee_key(args, svc),
        tx_path=args.output_tx_path,
    )
    _report(result)
    return 0


def _cmd_join(args: argparse.Namespace) -> int:
    svc = _services(args)
    if args.elastic:
        if not args.node_id or args.stake_amount is None:
            raise ValueError("--elastic needs --node-id and --stake-amount")
        result = svc.orchestrator.join_elastic(
            args.name,
            args.network,
            args.node_id,
            stake_amount=args.stake_amount,
            start_time=args.start_time or _default_start_time(),
            period_seconds=args.staking_period,
            fee_key=_fee_key(args, svc),
            delegation_fee=args.delegation_fee,
            simulate_public=svc.ctx.simulate_public,
        )
        _report(result)
        return 0
    if not args.node_config or not args.plugin_dir:
        raise ValueError("join needs --node-config and --plugin-dir")
    info = svc.orchestrator.join(
        args.name,
        args.network,
        args.node_config,
        args.plugin_dir,
        node_id=args.node_id,
        simulate_public=svc.ctx.simulate_public,
    )
    print(f"VM installed at {info['plugin']}")
    print(f"Node config {info['node_config']} tracks subnet {info['subnet_id']}; restart the node to apply")
    return 0


def _cmd_add_validator(args: argparse.Namespace) -> int:
    svc = _services(args)
    result = svc.orchestrator.add_validator(
        args.name,
        args.network,
        args.node_id,
        weight=args.weight,
        start_time=args.start_time or _default_start_time(),
        period_seconds=args.staking_period,
        simulate_public=svc.ctx.simulate_public,
        auth_keys=_split(args.auth_keys),
        tx_path=args.output_tx_path,
    )
    _report(result)
    return 0


def _cmd_remove_validator(args: argparse.Namespace) -> int:
    svc = _services(args)
    result = svc.orchestrator.remove_validator(
        args.name,
        args.network,
        args.node_id,
        simulate_public=svc.ctx.simulate_public,
        auth_keys=_split(args.auth_keys),
        tx_path=args.output_tx_path,
    )
    _report(result)
    return 0


def _cmd_transform_elastic(args: argparse.Namespace) -> int:
    svc = _services(args)
    overrides = {key: getattr(args, key) for key in ELASTIC_DEFAULTS if getattr(args, key) is not None}
    config = ElasticConfig(
        token_name=args.token_name,
        token_symbol=args.token_symbol,
        denomination=args.denomination,
        **overrides,
    )
    result = svc.orchestrator.transform_elastic(
        args.name,
        args.network,
        config,
        simulate_public=svc.ctx.simulate_public,
        auth_keys=_split(args.auth_keys),
        tx_path=args.output_tx_path,
        transform_validators=args.transform_validators,
        fee_key=_fee_key(args, svc),
    )
    _report(result)
    return 0


def _cmd_sign(args: argparse.Namespace) -> int:
    svc = _services(args)
    key = args.key or svc.ctx.default_key
    if not key:
        raise ValueError("sign needs --key (or default_key in config.toml)")
    artifact = svc.workflow.sign(args.tx_path, key)
    print(f"Signed; status {artifact.status}, {artifact.signatures_needed} signature(s) still needed")
    return 0


def _cmd_commit(args: argparse.Namespace) -> int:
    svc = _services(args)
    result = svc.workflow.commit(args.tx_path, simulate_public=svc.ctx.simulate_public)
    print(f"Committed transaction {result.get('tx_id', '')}")
    return 0


def _cmd_tx_status(args: argparse.Namespace) -> int:
    svc = _services(args)
    info = svc.workflow.status(args.tx_path)
    print(f"{info['kind']} for {info['subnet']} on {info['network']}: {info['status']}")
    print(f"  threshold: {info['threshold']}")
    print(f"  signed: {', '.join(info['signed']) or '-'}")
    print(f"  missing: {', '.join(info['missing']) or '-'}")
    return 0


def _cmd_describe(args: argparse.Namespace) -> int:
    svc = _services(args)
    info = svc.subnets.describe(args.name)
    if args.json:
        print(json.dumps(info, indent=2, sort_keys=True))
        return 0
    table = Table(title=f"Subnet {info['name']}", show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")
    table.add_row("VM", json.dumps(info["vm"], sort_keys=True))
    table.add_row("VM version", info["vm_version"] or "-")
    table.add_row("Protocol", str(info["rpc_version"]))
    table.add_row("Token", info["token_name"] or "-")
    if info["imported_from"]:
        table.add_row("Imported from", info["imported_from"])
    for key, path in sorted(info["files"].items()):
        table.add_row(key, path)
    for net, state in sorted(info["networks"].items()):
        chain = state["chain_id"] or f"pending ({state['pending_tx'] or 'no transaction file'})"
        table.add_row(f"{net}", f"{state['status']}  subnet {state['subnet_id']}  chain {chain}")
    console.print(table)
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    svc = _services(args)
    table = Table(title="Subnets")
    table.add_column("Name")
    table.add_column("VM")
    for net in (NETWORK_LOCAL, NETWORK_TESTNET, NETWORK_MAINNET):
        table.add_column(net)
    for name in svc.store.list_names():
        sidecar = svc.store.load(name)
        table.add_row(
            name,
            vm_type_name(sidecar.vm),
            *(sidecar.status(net) for net in (NETWORK_LOCAL, NETWORK_TESTNET, NETWORK_MAINNET)),
        )
    console.print(table)
    return 0


def _cmd_list_validators(args: argparse.Namespace) -> int:
    svc = _services(args)
    rows = svc.orchestrator.list_validators(args.name, args.network, simulate_public=svc.ctx.simulate_public)
    table = Table(title=f"Validators of {args.name} on {args.network}")
    for column in ("Node", "Weight", "Start", "Period (s)", "Stake", "Recorded", "On network"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            row["node_id"],
            str(row.get("weight", "")),
            str(row.get("start_time", "")),
            str(row.get("period_seconds", "")),
            str(row.get("stake_amount", "")),
            "yes" if row.get("recorded") else "no",
            "yes" if row.get("on_network") else "no",
        )
    console.print(table)
    return 0


def _cmd_stats(args: argparse.Namespace) -> int:
    svc = _services(args)
    stats = svc.orchestrator.stats(args.name, args.network, simulate_public=svc.ctx.simulate_public)
    print(json.dumps(stats, indent=2, sort_keys=True))
    return 0


def _cmd_key_create(args: argparse.Namespace) -> int:
    svc = _services(args)
    path = svc.keys.create(args.name, source_file=args.file, force=args.force)
    print(f"Key {args.name} written to {path}")
    return 0


def _cmd_key_delete(args: argparse.Namespace) -> int:
    svc = _services(args)
    if not args.force and not (sys.stdin.isatty() and ask_confirmation(f"Delete key {args.name}?")):
        print("Delete cancelled")
        return 0
    svc.keys.delete(args.name)
    print(f"Deleted key {args.name}")
    return 0


def _cmd_key_list(args: argparse.Namespace) -> int:
    svc = _services(args)
    table = Table(title="Keys")
    table.add_column("Name")
    table.add_column("Address")
    for name in svc.keys.list_names():
        table.add_row(name, svc.keys.address(name) if args.addresses else "")
    console.print(table)
    return 0


def _cmd_config_show(args: argparse.Namespace) -> int:
    path = config_path()
    table = Table(title=str(path), show_header=False)
    table.add_column("key", style="bold")
    table.add_column("value")
    for key, value in sorted(load_config(path).get("subnetctl", {}).items()):
        table.add_row(key, str(value))
    console.print(table)
    return 0


def _cmd_config_set(args: argparse.Namespace) -> int:
    values = {key: getattr(args, key) for key in SETTING_KEYS}
    if all(value is None for value in values.values()):
        raise ValueError("config set needs at least one setting")
    if values["compatibility_ttl"] is not None and values["compatibility_ttl"] < 0:
        raise ValueError("compatibility_ttl must be a non-negative integer")
    path = config_path()
    set_defaults(path, **values)
    print(f"Updated {path}")
    return 0


def _cmd_tui(args: argparse.Namespace) -> int:
    from .tui import launch_tui

    svc = _services(args)
    launch_tui(svc.store, svc.subnets)
    return 0


def _add_network(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--local", dest="network", action="store_const", const=NETWORK_LOCAL)
    group.add_argument("--testnet", dest="network", action="store_const", const=NETWORK_TESTNET)
    group.add_argument("--mainnet", dest="network", action="store_const", const=NETWORK_MAINNET)


def _add_offline(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--auth-keys", help="Comma-separated control keys that will sign")
    parser.add_argument("--output-tx-path", help="Where to write the transaction file when offline signing is needed")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog=os.path.basename(sys.argv[0]))
    parser.add_argument("--verbose", action="store_true", help="Show debug logging")
    parser.add_argument(
        "--simulate-public",
        action="store_true",
        help="Send testnet/mainnet operations to the local network",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_create = sub.add_parser("create", help="Create a subnet configuration")
    p_create.add_argument("name")
    p_create.add_argument("--genesis", required=True, help="Genesis file")
    p_create.add_argument("--genesis-mainnet", help="Mainnet-specific genesis file")
    vm_group = p_create.add_mutually_exclusive_group()
    vm_group.add_argument("--custom-vm", help="Path to a custom VM binary")
    vm_group.add_argument("--evm", action="store_true", help="Use subnet-evm (default)")
    p_create.add_argument("--vm-version", help="subnet-evm version, or 'latest'")
    p_create.add_argument("--token-name")
    p_create.add_argument("--force", action="store_true", help="Overwrite an existing subnet")
    p_create.set_defaults(func=_cmd_create)

    p_configure = sub.add_parser("configure", help="Attach chain config overlays")
    p_configure.add_argument("name")
    p_configure.add_argument("--chain-config")
    p_configure.add_argument("--per-node-chain-config")
    p_configure.set_defaults(func=_cmd_configure)

    p_delete = sub.add_parser("delete", help="Delete a subnet configuration")
    p_delete.add_argument("name")
    p_delete.add_argument("--force", action="store_true", help="Skip confirmation")
    p_delete.set_defaults(func=_cmd_delete)

    p_import = sub.add_parser("import", help="Import a published subnet descriptor")
    p_import.add_argument("repo", help="Descriptor repository path or alias")
    p_import.add_argument("subnet", help="Subnet name in the repository")
    p_import.add_argument("--name", help="Local name (defaults to the descriptor's)")
    p_import.set_defaults(func=_cmd_import)

    p_deploy = sub.add_parser("deploy", help="Deploy a subnet to a network")
    p_deploy.add_argument("name")
    _add_network(p_deploy)
    p_deploy.add_argument("--runtime-version", help="Pin the node runtime version")
    p_deploy.add_argument("--control-keys", help="Comma-separated control key addresses")
    p_deploy.add_argument("--threshold", type=int, default=1)
    p_deploy.add_argument("--key", help="Fee-paying key name")
    _add_offline(p_deploy)
    p_deploy.set_defaults(func=_cmd_deploy)

    p_join = sub.add_parser("join", help="Configure a node to validate a subnet")
    p_join.add_argument("name")
    _add_network(p_join)
    p_join.add_argument("--node-config", help="Node config JSON to update")
    p_join.add_argument("--plugin-dir", help="Node plugin directory")
    p_join.add_argument("--node-id")
    p_join.add_argument("--elastic", action="store_true", help="Join an elastic subnet with stake")
    p_join.add_argument("--stake-amount", type=int)
    p_join.add_argument("--start-time", help="ISO-8601 start (default: 5 minutes from now)")
    p_join.add_argument("--staking-period", type=int, default=ELASTIC_DEFAULTS["min_stake_duration"])
    p_join.add_argument("--delegation-fee", type=int)
    p_join.add_argument("--key", help="Fee-paying key name")
    p_join.set_defaults(func=_cmd_join)

    p_add = sub.add_parser("addValidator", help="Add a permissioned validator")
    p_add.add_argument("name")
    _add_network(p_add)
    p_add.add_argument("--node-id", required=True)
    p_add.add_argument("--weight", type=int, default=20)
    p_add.add_argument("--start-time", help="ISO-8601 start (default: 5 minutes from now)")
    p_add.add_argument("--staking-period", type=int, default=MIN_STAKING_PERIOD, help="Seconds")
    _add_offline(p_add)
    p_add.set_defaults(func=_cmd_add_validator)

    p_remove = sub.add_parser("removeValidator", help="Remove a permissioned validator")
    p_remove.add_argument("name")
    _add_network(p_remove)
    p_remove.add_argument("--node-id", required=True)
    _add_offline(p_remove)
    p_remove.set_defaults(func=_cmd_remove_validator)

    p_elastic = sub.add_parser("transformElastic", help="Convert a subnet to elastic staking")
    p_elastic.add_argument("name")
    _add_network(p_elastic)
    p_elastic.add_argument("--token-name", required=True)
    p_elastic.add_argument("--token-symbol", required=True)
    p_elastic.add_argument("--denomination", type=int, default=0)
    for key in ELASTIC_DEFAULTS:
        p_elastic.add_argument(f"--{key.replace('_', '-')}", dest=key, type=int, help=f"default {ELASTIC_DEFAULTS[key]}")
    p_elastic.add_argument("--transform-validators", action="store_true", help="Move current validators to staking")
    p_elastic.add_argument("--key", help="Fee-paying key name (for --transform-validators)")
    _add_offline(p_elastic)
    p_elastic.set_defaults(func=_cmd_transform_elastic)

    p_sign = sub.add_parser("sign", help="Sign a transaction file")
    p_sign.add_argument("tx_path")
    p_sign.add_argument("--key", help="Signing key name")
    p_sign.set_defaults(func=_cmd_sign)

    p_commit = sub.add_parser("commit", help="Submit a fully signed transaction file")
    p_commit.add_argument("tx_path")
    p_commit.set_defaults(func=_cmd_commit)

    p_tx_status = sub.add_parser("txStatus", help="Show a transaction file's signing progress")
    p_tx_status.add_argument("tx_path")
    p_tx_status.set_defaults(func=_cmd_tx_status)

    p_describe = sub.add_parser("describe", help="Show a subnet's configuration and state")
    p_describe.add_argument("name")
    p_describe.add_argument("--json", action="store_true")
    p_describe.set_defaults(func=_cmd_describe)

    p_list = sub.add_parser("list", help="List subnets")
    p_list.set_defaults(func=_cmd_list)

    p_validators = sub.add_parser("listValidators", help="List a subnet's validators")
    p_validators.add_argument("name")
    _add_network(p_validators)
    p_validators.set_defaults(func=_cmd_list_validators)

    p_stats = sub.add_parser("stats", help="Show subnet statistics")
    p_stats.add_argument("name")
    _add_network(p_stats)
    p_stats.set_defaults(func=_cmd_stats)

    p_key = sub.add_parser("key", help="Manage signing keys")
    key_sub = p_key.add_subparsers(dest="key_cmd", required=True)
    p_key_create = key_sub.add_parser("create", help="Generate or import a key")
    p_key_create.add_argument("name")
    p_key_create.add_argument("--file", help="Import an existing key file")
    p_key_create.add_argument("--force", action="store_true")
    p_key_create.set_defaults(func=_cmd_key_create)
    p_key_delete = key_sub.add_parser("delete", help="Delete a key")
    p_key_delete.add_argument("name")
    p_key_delete.add_argument("--force", action="store_true")
    p_key_delete.set_defaults(func=_cmd_key_delete)
    p_key_list = key_sub.add_parser("list", help="List keys")
    p_key_list.add_argument("--addresses", action="store_true", help="Resolve addresses via the key tool")
    p_key_list.set_defaults(func=_cmd_key_list)

    p_config = sub.add_parser("config", help="Show or change settings in config.toml")
    config_sub = p_config.add_subparsers(dest="config_cmd", required=True)
    p_config_show = config_sub.add_parser("show", help="Print the current settings")
    p_config_show.set_defaults(func=_cmd_config_show)
    p_config_set = config_sub.add_parser("set", help="Change settings")
    for key in SETTING_KEYS:
        p_config_set.add_argument(f"--{key.replace('_', '-')}", dest=key, type=int if key == "compatibility_ttl" else str)
    p_config_set.set_defaults(func=_cmd_config_set)

    p_tui = sub.add_parser("tui", help="Browse subnets interactively")
    p_tui.set_defaults(func=_cmd_tui)

    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except ExternalOperationError as exc:
        print(str(exc))
        if exc.output:
            print(exc.output)
        return 1
    except (SubnetError, FileNotFoundError, ValueError) as exc:
        print(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
