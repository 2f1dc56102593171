import base64
import os
import tempfile
import unittest
from pathlib import Path

from fakes import GENESIS, make_resolver, make_store

from subnetctl.errors import AlreadyExistsError, IncompatibleVersionError, NotFoundError
from subnetctl.models import CustomVM, NetworkState, RegisteredVM, StandardVM
from subnetctl.publisher import DirectoryPublisher
from subnetctl.subnet import SubnetConfigManager


class SubnetConfigManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.layout, self.store = make_store(self.root / "base")
        self.genesis = self.root / "genesis.json"
        self.genesis.write_bytes(GENESIS)
        self.confirm_answers: list[bool] = []
        self.questions: list[str] = []
        self.manager = SubnetConfigManager(
            self.layout,
            self.store,
            resolver=make_resolver(),
            publisher=DirectoryPublisher(self.layout.repos_dir),
            confirm=self._confirm,
            protocol_reader=lambda path: 26,
        )

    def _confirm(self, question: str) -> bool:
        self.questions.append(question)
        return self.confirm_answers.pop(0)

    def _evm(self, version: str = "latest") -> StandardVM:
        return StandardVM(kind="subnet-evm", version=version)

    def test_create_standard_vm_latest(self) -> None:
        sidecar = self.manager.create("sub1", self._evm(), self.genesis)
        self.assertEqual(sidecar.vm, StandardVM(kind="subnet-evm", version="v0.5.1"))
        self.assertEqual(sidecar.vm_version, "v0.5.1")
        self.assertEqual(sidecar.rpc_version, 27)
        self.assertEqual(self.layout.genesis("sub1").read_bytes(), GENESIS)
        self.assertTrue(self.manager.exists("sub1"))

    def test_create_standard_vm_pinned(self) -> None:
        sidecar = self.manager.create("sub1", self._evm("v0.5.0"), self.genesis)
        self.assertEqual(sidecar.rpc_version, 26)

    def test_create_unmapped_version_writes_nothing(self) -> None:
        with self.assertRaises(IncompatibleVersionError):
            self.manager.create("sub1", self._evm("v9.9.9"), self.genesis)
        self.assertFalse(self.manager.exists("sub1"))
        self.assertFalse(self.layout.genesis("sub1").exists())

    def test_create_custom_vm_copies_binary(self) -> None:
        binary = self.root / "myvm"
        binary.write_bytes(b"\x7fELF")
        sidecar = self.manager.create("sub2", CustomVM(binary=str(binary)), self.genesis)
        self.assertEqual(sidecar.vm, CustomVM(binary="vms/sub2"))
        self.assertEqual(sidecar.rpc_version, 26)
        self.assertEqual(sidecar.vm_version, "")
        copied = self.layout.vm_binary("sub2")
        self.assertEqual(copied.read_bytes(), b"\x7fELF")
        if os.name != "nt":
            self.assertTrue(os.access(copied, os.X_OK))

    def test_create_with_mainnet_genesis(self) -> None:
        mainnet = self.root / "genesis_mainnet.json"
        mainnet.write_text("{}")
        self.manager.create("sub1", self._evm(), self.genesis, genesis_mainnet_source=mainnet)
        self.assertEqual(self.layout.genesis_mainnet("sub1").read_text(), "{}")

    def test_create_rejects_registered_vm(self) -> None:
        with self.assertRaises(ValueError):
            self.manager.create("sub1", RegisteredVM(name="x", version="v1.0.0", repo="r"), self.genesis)

    def test_create_existing_requires_force(self) -> None:
        self.manager.create("sub1", self._evm(), self.genesis)
        with self.assertRaises(AlreadyExistsError):
            self.manager.create("sub1", self._evm(), self.genesis)

    def test_force_create_replaces_bundle(self) -> None:
        self.manager.create("sub1", self._evm(), self.genesis)
        chain_config = self.root / "chain.json"
        chain_config.write_text('{"pruning-enabled": false}')
        self.manager.configure("sub1", chain_config_source=chain_config)
        sidecar = self.manager.create("sub1", self._evm("v0.5.0"), self.genesis, force=True)
        self.assertEqual(sidecar.vm_version, "v0.5.0")
        self.assertFalse(self.layout.chain_config("sub1").exists())

    def test_failed_force_create_keeps_deployed_subnet(self) -> None:
        self.manager.create("sub1", self._evm(), self.genesis)
        self.store.set_network_state("sub1", "local", NetworkState(subnet_id="subnet-1", chain_id="chain-1"))
        before = self.layout.sidecar("sub1").read_bytes()

        with self.assertRaises(NotFoundError):
            self.manager.create("sub1", self._evm(), self.root / "missing.json", force=True)
        with self.assertRaises(IncompatibleVersionError):
            self.manager.create("sub1", self._evm("v9.9.9"), self.genesis, force=True)

        self.assertEqual(self.layout.sidecar("sub1").read_bytes(), before)
        self.assertEqual(self.store.load("sub1").networks["local"].chain_id, "chain-1")
        self.assertEqual(self.layout.genesis("sub1").read_bytes(), GENESIS)

    def test_force_create_from_own_binary(self) -> None:
        binary = self.root / "myvm"
        binary.write_bytes(b"\x7fELF")
        self.manager.create("sub2", CustomVM(binary=str(binary)), self.genesis)
        own = self.layout.vm_binary("sub2")
        self.manager.create("sub2", CustomVM(binary=str(own)), self.genesis, force=True)
        self.assertEqual(own.read_bytes(), b"\x7fELF")

    def test_create_rejects_bad_name(self) -> None:
        for bad in ("1sub", "my-subnet", ""):
            with self.assertRaises(ValueError):
                self.manager.create(bad, self._evm(), self.genesis)

    def test_create_missing_genesis(self) -> None:
        with self.assertRaises(NotFoundError):
            self.manager.create("sub1", self._evm(), self.root / "absent.json")
        self.assertFalse(self.manager.exists("sub1"))

    def test_dangling_genesis_counts_as_not_created(self) -> None:
        dangling = self.layout.genesis("sub1")
        dangling.parent.mkdir(parents=True)
        dangling.write_text("partial")
        self.assertFalse(self.manager.exists("sub1"))
        self.manager.create("sub1", self._evm(), self.genesis)
        self.assertEqual(self.layout.genesis("sub1").read_bytes(), GENESIS)

    def test_configure_missing_subnet(self) -> None:
        with self.assertRaises(NotFoundError):
            self.manager.configure("nope", chain_config_source=self.genesis)

    def test_configure_overlays_are_independent(self) -> None:
        self.manager.create("sub1", self._evm(), self.genesis)
        per_node = self.root / "per-node.json"
        per_node.write_text('{"NodeID-1": {}}')
        written = self.manager.configure("sub1", per_node_chain_config_source=per_node)
        self.assertEqual(written, [self.layout.per_node_chain_config("sub1")])
        self.assertFalse(self.layout.chain_config("sub1").exists())

    def test_configure_rejects_invalid_json(self) -> None:
        self.manager.create("sub1", self._evm(), self.genesis)
        bad = self.root / "bad.json"
        bad.write_text("{nope")
        with self.assertRaises(ValueError):
            self.manager.configure("sub1", chain_config_source=bad)

    def test_configure_needs_an_overlay(self) -> None:
        self.manager.create("sub1", self._evm(), self.genesis)
        with self.assertRaises(ValueError):
            self.manager.configure("sub1")

    def test_delete_missing_subnet_with_force(self) -> None:
        with self.assertRaises(NotFoundError):
            self.manager.delete("missingSubnet", force=True)

    def test_forced_delete_removes_everything(self) -> None:
        binary = self.root / "myvm"
        binary.write_bytes(b"\x7fELF")
        self.manager.create("sub1", CustomVM(binary=str(binary)), self.genesis)
        chain_config = self.root / "chain.json"
        chain_config.write_text("{}")
        self.manager.configure("sub1", chain_config_source=chain_config)
        self.layout.elastic_config("sub1").write_text("{}")

        self.assertTrue(self.manager.delete("sub1", force=True))
        self.assertFalse(self.store.exists("sub1"))
        self.assertFalse(self.layout.subnet_dir("sub1").exists())
        self.assertFalse(self.layout.vm_binary("sub1").exists())
        self.assertEqual(self.questions, [])

    def test_delete_asks_for_confirmation(self) -> None:
        self.manager.create("sub1", self._evm(), self.genesis)
        self.confirm_answers = [False]
        self.assertFalse(self.manager.delete("sub1"))
        self.assertTrue(self.store.exists("sub1"))
        self.confirm_answers = [True]
        self.assertTrue(self.manager.delete("sub1"))
        self.assertFalse(self.store.exists("sub1"))
        self.assertEqual(len(self.questions), 2)

    def test_describe(self) -> None:
        self.manager.create("sub1", self._evm(), self.genesis, token_name="BLIZZARD")
        info = self.manager.describe("sub1")
        self.assertEqual(info["vm"], {"type": "standard", "kind": "subnet-evm", "version": "v0.5.1"})
        self.assertEqual(info["token_name"], "BLIZZARD")
        self.assertIn("genesis", info["files"])
        self.assertNotIn("chain_config", info["files"])
        self.assertEqual(info["networks"], {})


class ImportTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.layout, self.store = make_store(self.root / "base")
        self.repo = self.root / "descriptors"
        (self.repo / "subnets").mkdir(parents=True)
        (self.repo / "vms").mkdir()
        genesis_b64 = base64.b64encode(GENESIS).decode()
        (self.repo / "subnets" / "spaces.toml").write_text(
            f'[subnet]\nname = "spaces"\nvm = "spacesvm"\ngenesis = "{genesis_b64}"\ntoken_name = "SPC"\n'
        )
        (self.repo / "vms" / "spacesvm.toml").write_text(
            '[vm]\nname = "spacesvm"\nversion = "v0.0.3"\nrpc_version = 26\n'
            'binary_url = "https://example.invalid/spacesvm"\nchecksum = "sha256:00ff"\n'
        )
        self.manager = SubnetConfigManager(
            self.layout, self.store, publisher=DirectoryPublisher(self.layout.repos_dir)
        )

    def test_import_materializes_bundle(self) -> None:
        sidecar = self.manager.import_subnet(str(self.repo), "spaces")
        self.assertEqual(
            sidecar.vm,
            RegisteredVM(
                name="spacesvm",
                version="v0.0.3",
                repo=str(self.repo),
                binary_url="https://example.invalid/spacesvm",
                checksum="sha256:00ff",
            ),
        )
        self.assertEqual(sidecar.rpc_version, 26)
        self.assertEqual(sidecar.token_name, "SPC")
        self.assertEqual(sidecar.imported_from, str(self.repo))
        self.assertEqual(self.layout.genesis("spaces").read_bytes(), GENESIS)
        self.assertEqual(self.store.load("spaces"), sidecar)

    def test_import_existing_name(self) -> None:
        self.manager.import_subnet(str(self.repo), "spaces")
        with self.assertRaises(AlreadyExistsError):
            self.manager.import_subnet(str(self.repo), "spaces")

    def test_import_existing_vm_registration(self) -> None:
        self.manager.import_subnet(str(self.repo), "spaces")
        with self.assertRaises(AlreadyExistsError):
            self.manager.import_subnet(str(self.repo), "spaces", name="spacesTwo")
        self.assertFalse(self.store.exists("spacesTwo"))

    def test_import_by_alias(self) -> None:
        self.layout.repos_dir.mkdir(parents=True)
        (self.layout.repos_dir / "community").symlink_to(self.repo, target_is_directory=True)
        sidecar = self.manager.import_subnet("community", "spaces")
        self.assertEqual(sidecar.imported_from, "community")

    def test_import_unknown_repo_or_subnet(self) -> None:
        with self.assertRaises(NotFoundError):
            self.manager.import_subnet(str(self.root / "absent"), "spaces")
        with self.assertRaises(NotFoundError):
            self.manager.import_subnet(str(self.repo), "absent")

    def test_import_rejects_bad_genesis(self) -> None:
        (self.repo / "subnets" / "broken.toml").write_text(
            '[subnet]\nname = "broken"\nvm = "spacesvm"\ngenesis = "***"\n'
        )
        with self.assertRaises(ValueError):
            self.manager.import_subnet(str(self.repo), "broken")


if __name__ == "__main__":
    unittest.main()
