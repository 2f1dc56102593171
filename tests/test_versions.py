import json
import subprocess
import tempfile
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from fakes import make_resolver, make_table

from subnetctl.errors import ArtifactUnreadableError, ExternalOperationError, IncompatibleVersionError
from subnetctl.versions import CompatibilityTable, VersionResolver, extract_protocol_version, load_compatibility

VM_DOC = {"rpcChainVMProtocolVersion": {"v0.5.0": 26, "v0.5.1": 27}}
RUNTIME_DOC = {"26": ["v1.10.0", "v1.10.1"], "27": ["v1.10.2"]}


class VersionResolverTests(unittest.TestCase):
    def test_latest_resolves_to_newest_vm(self) -> None:
        resolver = make_resolver()
        self.assertEqual(resolver.latest_vm_version(), "v0.5.1")
        self.assertEqual(resolver.resolve_runtime_version("latest"), "v1.10.2")

    def test_pinned_version_picks_newest_matching_runtime(self) -> None:
        # v1.10.1 sorts above v1.9.9 numerically
        self.assertEqual(make_resolver().resolve_runtime_version("v0.5.0"), "v1.10.1")

    def test_unmapped_pinned_version_fails(self) -> None:
        with self.assertRaises(IncompatibleVersionError):
            make_resolver().resolve_runtime_version("v9.9.9")

    def test_protocol_without_runtime_fails(self) -> None:
        table = CompatibilityTable(vm_protocols={"v0.6.0": 30}, runtime_protocols={})
        with self.assertRaises(IncompatibleVersionError):
            VersionResolver.from_table(table).resolve_runtime_version("v0.6.0")

    def test_protocol_for_runtime(self) -> None:
        resolver = make_resolver()
        self.assertEqual(resolver.protocol_for_runtime("v1.10.2"), 27)
        self.assertIsNone(resolver.protocol_for_runtime("v0.0.1"))

    def test_table_is_loaded_once(self) -> None:
        calls = []

        def source() -> CompatibilityTable:
            calls.append(1)
            return make_table()

        resolver = VersionResolver(source)
        resolver.latest_vm_version()
        resolver.resolve_runtime_version("v0.5.0")
        self.assertEqual(len(calls), 1)


class CompatibilityCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.cache = Path(self._tmp.name) / "compatibility.json"

    def _fetch(self, url: str):
        return VM_DOC if url == "vm" else RUNTIME_DOC

    def test_fetch_populates_cache(self) -> None:
        table = load_compatibility("vm", "runtime", self.cache, 3600, fetch=self._fetch)
        self.assertEqual(table.vm_protocols["v0.5.1"], 27)
        self.assertEqual(table.runtime_protocols[26], ["v1.10.0", "v1.10.1"])
        self.assertTrue(self.cache.is_file())

    def test_fresh_cache_skips_fetch(self) -> None:
        load_compatibility("vm", "runtime", self.cache, 3600, fetch=self._fetch)

        def fail(url: str):
            raise AssertionError("should not fetch")

        table = load_compatibility("vm", "runtime", self.cache, 3600, fetch=fail)
        self.assertEqual(table.runtime_protocols[27], ["v1.10.2"])

    def test_stale_cache_used_when_fetch_fails(self) -> None:
        load_compatibility("vm", "runtime", self.cache, 3600, fetch=self._fetch)
        raw = json.loads(self.cache.read_text())
        raw["fetched_at"] = time.time() - 7200
        self.cache.write_text(json.dumps(raw))

        def fail(url: str):
            raise ExternalOperationError("offline")

        table = load_compatibility("vm", "runtime", self.cache, 3600, fetch=fail)
        self.assertEqual(table.vm_protocols["v0.5.0"], 26)

    def test_no_cache_and_failed_fetch_raises(self) -> None:
        def fail(url: str):
            raise ExternalOperationError("offline")

        with self.assertRaises(ExternalOperationError):
            load_compatibility("vm", "runtime", self.cache, 3600, fetch=fail)

    def test_malformed_document_rejected(self) -> None:
        with self.assertRaises(ValueError):
            CompatibilityTable.from_documents({"wrong": {}}, RUNTIME_DOC)


class ExtractProtocolVersionTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.binary = Path(self._tmp.name) / "myvm"
        self.binary.write_bytes(b"\x7fELF")

    def _completed(self, stdout: str, returncode: int = 0) -> subprocess.CompletedProcess:
        return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="boom")

    def test_reads_rpcchainvm(self) -> None:
        with patch("subnetctl.versions.subprocess.run") as mock_run:
            mock_run.return_value = self._completed('{"rpcchainvm": 27, "version": "v0.1.0"}\n')
            self.assertEqual(extract_protocol_version(self.binary), 27)
        self.assertEqual(mock_run.call_args.args[0], [str(self.binary), "--version-json"])

    def test_unparseable_output(self) -> None:
        with patch("subnetctl.versions.subprocess.run") as mock_run:
            mock_run.return_value = self._completed("myvm version 1.0\n")
            with self.assertRaises(ArtifactUnreadableError):
                extract_protocol_version(self.binary)

    def test_missing_field(self) -> None:
        with patch("subnetctl.versions.subprocess.run") as mock_run:
            mock_run.return_value = self._completed('{"version": "v0.1.0"}')
            with self.assertRaises(ArtifactUnreadableError):
                extract_protocol_version(self.binary)

    def test_non_zero_exit(self) -> None:
        with patch("subnetctl.versions.subprocess.run") as mock_run:
            mock_run.return_value = self._completed("", returncode=2)
            with self.assertRaises(ArtifactUnreadableError):
                extract_protocol_version(self.binary)

    def test_missing_binary(self) -> None:
        with self.assertRaises(ArtifactUnreadableError):
            extract_protocol_version(Path(self._tmp.name) / "absent")

    def test_unrunnable_binary(self) -> None:
        with patch("subnetctl.versions.subprocess.run", side_effect=PermissionError("denied")):
            with self.assertRaises(ArtifactUnreadableError):
                extract_protocol_version(self.binary)


if __name__ == "__main__":
    unittest.main()
