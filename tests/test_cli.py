import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from fakes import GENESIS, make_table

from subnetctl.cli import main
from subnetctl.config import resolve_context


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.genesis = self.root / "genesis.json"
        self.genesis.write_bytes(GENESIS)
        env = patch.dict(os.environ, {"SUBNETCTL_HOME": str(self.root / "home")})
        env.start()
        self.addCleanup(env.stop)
        compat = patch("subnetctl.cli.load_compatibility", return_value=make_table())
        compat.start()
        self.addCleanup(compat.stop)

    def _run(self, *argv: str) -> tuple[int, str]:
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(list(argv))
        return code, out.getvalue()

    def test_create_describe_delete(self) -> None:
        code, out = self._run("create", "sub1", "--genesis", str(self.genesis))
        self.assertEqual(code, 0, out)
        self.assertIn("Created subnet sub1", out)

        code, out = self._run("describe", "sub1", "--json")
        self.assertEqual(code, 0)
        info = json.loads(out)
        self.assertEqual(info["vm"]["version"], "v0.5.1")

        code, out = self._run("delete", "sub1", "--force")
        self.assertEqual(code, 0)
        self.assertFalse((self.root / "home" / "subnets" / "sub1").exists())

    def test_errors_map_to_exit_code(self) -> None:
        code, out = self._run("delete", "missingSubnet", "--force")
        self.assertEqual(code, 1)
        self.assertIn("does not exist", out)

        self._run("create", "sub1", "--genesis", str(self.genesis))
        code, out = self._run("create", "sub1", "--genesis", str(self.genesis))
        self.assertEqual(code, 1)
        self.assertIn("already exists", out)

    def test_transform_undeployed(self) -> None:
        self._run("create", "sub1", "--genesis", str(self.genesis))
        code, out = self._run(
            "transformElastic", "sub1", "--local", "--token-name", "BLIZZARD", "--token-symbol", "BRRR"
        )
        self.assertEqual(code, 1)
        self.assertIn("not deployed", out)

    def test_network_flags_are_exclusive_and_required(self) -> None:
        with self.assertRaises(SystemExit):
            self._run("deploy", "sub1")
        with self.assertRaises(SystemExit):
            self._run("deploy", "sub1", "--local", "--testnet")

    def test_delete_without_tty_is_cancelled(self) -> None:
        self._run("create", "sub1", "--genesis", str(self.genesis))
        with patch("subnetctl.cli.sys.stdin", io.StringIO("")):
            code, out = self._run("delete", "sub1")
        self.assertEqual(code, 0)
        self.assertIn("cancelled", out)
        self.assertTrue((self.root / "home" / "subnets" / "sub1" / "sidecar.json").exists())

    def test_config_set_and_show(self) -> None:
        code, out = self._run("config", "set", "--default-key", "alice", "--compatibility-ttl", "60")
        self.assertEqual(code, 0, out)
        ctx = resolve_context()
        self.assertEqual(ctx.default_key, "alice")
        self.assertEqual(ctx.compatibility_ttl, 60)

        code, out = self._run("config", "show")
        self.assertEqual(code, 0)
        self.assertIn("default_key", out)
        self.assertIn("alice", out)

    def test_config_set_needs_a_value(self) -> None:
        code, out = self._run("config", "set")
        self.assertEqual(code, 1)
        self.assertIn("at least one setting", out)
        code, out = self._run("config", "set", "--compatibility-ttl", "-5")
        self.assertEqual(code, 1)

    def test_list(self) -> None:
        self._run("create", "sub1", "--genesis", str(self.genesis))
        code, out = self._run("list")
        self.assertEqual(code, 0)
        self.assertIn("sub1", out)


if __name__ == "__main__":
    unittest.main()
