import json
import tempfile
import unittest
from pathlib import Path

from fakes import FakeControlPlane, FakeKeys, make_store

from subnetctl.errors import (
    AlreadyExistsError,
    AlreadySignedError,
    InsufficientSignaturesError,
    NotDeployedError,
    NotFoundError,
    TransactionStateError,
    UnauthorizedSignerError,
)
from subnetctl.models import NetworkState, Sidecar, StandardVM
from subnetctl.txn import TransactionArtifact, TransactionWorkflow, add_signature

ADDRESSES = {"alice": "P-alice", "bob": "P-bob", "carol": "P-carol", "mallory": "P-mallory"}


def _artifact(threshold: int) -> TransactionArtifact:
    return TransactionArtifact(
        kind="add-validator",
        subnet="sub1",
        network="testnet",
        unsigned_payload={"subnet_id": "subnet-1", "node_id": "NodeID-1"},
        required_authorizers=["P-alice", "P-bob", "P-carol"],
        threshold=threshold,
    )


class ThresholdTests(unittest.TestCase):
    def test_ready_exactly_at_kth_signature(self) -> None:
        signers = ["P-alice", "P-bob", "P-carol"]
        for k in (1, 2, 3):
            artifact = _artifact(k)
            for i, signer in enumerate(signers[:k], start=1):
                add_signature(artifact, signer, f"sig{i}")
                expected = "ready-to-commit" if i == k else "partially-signed"
                self.assertEqual(artifact.status, expected, f"k={k} after {i} signature(s)")
            self.assertEqual(artifact.signatures_needed, 0)
            if k < len(signers):
                with self.assertRaises(TransactionStateError):
                    add_signature(artifact, signers[k], "extra")
            self.assertEqual(len(artifact.collected_signatures), k)

    def test_unauthorized_signer(self) -> None:
        artifact = _artifact(2)
        with self.assertRaises(UnauthorizedSignerError):
            add_signature(artifact, "P-mallory", "sig")
        self.assertEqual(artifact.status, "proposed")

    def test_duplicate_signer(self) -> None:
        artifact = _artifact(2)
        add_signature(artifact, "P-alice", "sig")
        with self.assertRaises(AlreadySignedError):
            add_signature(artifact, "P-alice", "sig-again")
        self.assertEqual(artifact.status, "partially-signed")

    def test_from_dict_rejects_inconsistent_file(self) -> None:
        raw = _artifact(2).to_dict()
        raw["collected_signatures"] = {"P-mallory": "sig"}
        with self.assertRaises(ValueError):
            TransactionArtifact.from_dict(raw)
        raw = _artifact(2).to_dict()
        raw["threshold"] = 4
        with self.assertRaises(ValueError):
            TransactionArtifact.from_dict(raw)
        raw = _artifact(2).to_dict()
        raw["kind"] = "mint"
        with self.assertRaises(ValueError):
            TransactionArtifact.from_dict(raw)


class WorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.layout, self.store = make_store(self.root / "base")
        self.store.save(
            Sidecar(
                name="sub1",
                vm=StandardVM(kind="subnet-evm", version="v0.5.1"),
                vm_version="v0.5.1",
                rpc_version=27,
                networks={
                    "testnet": NetworkState(
                        subnet_id="subnet-1",
                        chain_id="chain-1",
                        control_keys=["P-alice", "P-bob", "P-carol"],
                        threshold=2,
                    )
                },
            )
        )
        self.keys = FakeKeys(ADDRESSES)
        self.control = FakeControlPlane()
        self.workflow = TransactionWorkflow(self.store, self.keys, self.control)
        self.path = self.root / "add.tx.json"

    def _propose(self) -> TransactionArtifact:
        return self.workflow.propose(
            self.path,
            "add-validator",
            "sub1",
            "testnet",
            {
                "subnet_id": "subnet-1",
                "node_id": "NodeID-7",
                "weight": 20,
                "start_time": "2026-01-01T00:00:00+00:00",
                "period_seconds": 86400,
            },
            ["P-alice", "P-bob", "P-carol"],
            2,
        )

    def test_propose_writes_file(self) -> None:
        artifact = self._propose()
        self.assertEqual(artifact.status, "proposed")
        self.assertEqual(self.workflow.load(self.path), artifact)
        self.assertTrue(json.loads(self.path.read_text())["created_at"])

    def test_propose_refuses_to_overwrite(self) -> None:
        self._propose()
        with self.assertRaises(AlreadyExistsError):
            self._propose()

    def test_load_missing(self) -> None:
        with self.assertRaises(NotFoundError):
            self.workflow.load(self.root / "absent.json")

    def test_sign_signs_payload_bytes(self) -> None:
        artifact = self._propose()
        self.workflow.sign(self.path, "alice")
        self.assertEqual(self.keys.signed, [("alice", artifact.payload_bytes())])

    def test_unauthorized_sign_leaves_file_untouched(self) -> None:
        self._propose()
        before = self.path.read_bytes()
        with self.assertRaises(UnauthorizedSignerError):
            self.workflow.sign(self.path, "mallory")
        self.assertEqual(self.path.read_bytes(), before)
        self.assertEqual(self.keys.signed, [])

    def test_full_round_is_resumable(self) -> None:
        self._propose()
        self.assertEqual(self.workflow.sign(self.path, "alice").status, "partially-signed")
        with self.assertRaises(InsufficientSignaturesError):
            self.workflow.commit(self.path)
        # A fresh workflow, as on another machine.
        other = TransactionWorkflow(self.store, FakeKeys(ADDRESSES), self.control)
        with self.assertRaises(AlreadySignedError):
            other.sign(self.path, "alice")
        self.assertEqual(other.sign(self.path, "carol").status, "ready-to-commit")
        with self.assertRaises(TransactionStateError):
            other.sign(self.path, "bob")

        result = self.workflow.commit(self.path)
        self.assertEqual(self.control.submitted()[0][1], "add-validator")
        self.assertEqual(set(self.control.submitted()[0][3]), {"P-alice", "P-carol"})
        state = self.store.load("sub1").networks["testnet"]
        self.assertEqual(state.validators["NodeID-7"].weight, 20)
        committed = self.workflow.load(self.path)
        self.assertEqual(committed.status, "committed")
        self.assertEqual(committed.result, result)
        with self.assertRaises(TransactionStateError):
            self.workflow.commit(self.path)

    def test_commit_checks_subnet_state(self) -> None:
        self.workflow.propose(
            self.path,
            "add-validator",
            "sub1",
            "mainnet",
            {"subnet_id": "s", "node_id": "n", "weight": 1, "start_time": "", "period_seconds": 1},
            ["P-alice"],
            1,
        )
        self.workflow.sign(self.path, "alice")
        with self.assertRaises(NotDeployedError):
            self.workflow.commit(self.path)
        self.assertEqual(self.control.submitted(), [])

    def test_status_report(self) -> None:
        self._propose()
        self.workflow.sign(self.path, "bob")
        info = self.workflow.status(self.path)
        self.assertEqual(info["status"], "partially-signed")
        self.assertEqual(info["signed"], ["P-bob"])
        self.assertEqual(info["missing"], ["P-alice", "P-carol"])
        self.assertEqual(info["signatures_needed"], 1)


if __name__ == "__main__":
    unittest.main()
