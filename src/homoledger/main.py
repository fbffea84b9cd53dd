import json
import logging
import sys
import traceback

from homoledger import config
from homoledger.common.errors import PaillierError
from homoledger.common.paillier import preset_key_pair
from homoledger.accounting.dual import DualEncryptionProtocol
from homoledger.accounting.errors import LedgerError
from homoledger.accounting.messages import DeclaredTotals, DualEncryptedAmount
from homoledger.accounting.reconciliation import ReconciliationEngine
from homoledger.accounting.registry import PartyRegistry
from homoledger.party import Party


class LedgerServer:
    """
    Serves the ledger core over newline-delimited JSON.

    Every command is `{"action": ..., "data": {...}}`. Big integers travel as
    decimal strings. Registry, key and verification problems come back as
    `status: error` responses and the session continues; only unexpected
    exceptions end it.
    """

    def __init__(self, registry: PartyRegistry = None):
        self.registry = registry if registry is not None else PartyRegistry()
        self.protocol = DualEncryptionProtocol(self.registry)
        self.engine = ReconciliationEngine(self.registry)

        # Maps an incoming action to its handler.
        self.HANDLERS = {
            "register": self.handle_register,
            "freeze": self.handle_freeze,
            "list_parties": self.handle_list_parties,
            "public_key": self.handle_public_key,
            "dual_encrypt": self.handle_dual_encrypt,
            "verify": self.handle_verify,
            "declare": self.handle_declare,
            "reconcile": self.handle_reconcile,
        }

    def handle_register(self, data: dict) -> dict:
        party_id = data.get("id")
        name = data.get("name")
        if "preset" in data:
            public_key, private_key = preset_key_pair(int(data["preset"]))
            party = self.registry.register(party_id, public_key, private_key, name=name)
        elif "p" in data or "q" in data:
            party = self.registry.register_generated(
                party_id, p=int(data["p"]), q=int(data["q"]), name=name
            )
        else:
            party = self.registry.register_generated(
                party_id, bits=int(data.get("bits", config.DEFAULT_MODULUS_BITS)), name=name
            )
        return {"id": party.id, "name": party.name, "public_key": party.public_key.to_dict()}

    def handle_freeze(self, data: dict) -> dict:
        self.registry.freeze()
        return {"frozen": True, "parties": len(self.registry)}

    def handle_list_parties(self, data: dict) -> list:
        return [
            {"id": p.id, "name": p.name, "public_key": p.public_key.to_dict()}
            for p in self.registry
        ]

    def handle_public_key(self, data: dict) -> dict:
        return self.registry.public_key_of(data["id"]).to_dict()

    def handle_dual_encrypt(self, data: dict) -> dict:
        encrypted = self.protocol.dual_encrypt(
            data["amount"],
            data["sender_id"],
            data["recipient_id"],
            transaction_id=data.get("transaction_id"),
            timestamp=data.get("timestamp"),
        )
        return encrypted.to_dict()

    def handle_verify(self, data: dict) -> dict:
        encrypted = DualEncryptedAmount.from_dict(data["transaction"])
        result = self.protocol.verify(encrypted, data["claimant_id"], data["claimed_amount"])
        return result.to_dict()

    def handle_declare(self, data: dict) -> dict:
        transactions = [DualEncryptedAmount.from_dict(t) for t in data.get("transactions", [])]
        return Party(data["id"], self.registry).declare(transactions).to_dict()

    def handle_reconcile(self, data: dict) -> dict:
        transactions = [DualEncryptedAmount.from_dict(t) for t in data.get("transactions", [])]
        declared = [DeclaredTotals.from_dict(d) for d in data.get("declared_totals", [])]
        report = self.engine.reconcile(transactions, declared)
        result = report.to_dict()
        result["bulletin_board"] = report.bulletin_board()
        return result

    def process_command(self, command_json: str) -> dict:
        """Processes a single JSON command from the client."""
        action = None
        try:
            command = json.loads(command_json)
            if not isinstance(command, dict):
                raise ValueError("Command must be a JSON object")
            action = command.get("action")
            data = command.get("data") or {}

            handler = self.HANDLERS.get(action)
            if handler is None:
                return {
                    "status": "error",
                    "action": action,
                    "message": f"Unknown action: {action!r}",
                    "expected_actions": sorted(self.HANDLERS),
                }

            return {"status": "ok", "action": action, "result": handler(data)}

        except (LedgerError, PaillierError) as e:
            return {
                "status": "error",
                "action": action,
                "message": str(e),
                "type": type(e).__name__,
            }
        except (KeyError, TypeError, ValueError) as e:
            # Includes json.JSONDecodeError.
            return {
                "status": "error",
                "action": action,
                "message": f"Malformed command: {e!r}",
                "type": "MalformedCommand",
            }
        except Exception:
            return {
                "status": "error",
                "action": action,
                "message": "An unexpected server error occurred.",
                "traceback": traceback.format_exc(),
            }


def main():
    """Starts the ledger server and processes commands from stdin."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    server = LedgerServer()
    print(json.dumps({"status": "ready", "actions": sorted(server.HANDLERS)}))
    sys.stdout.flush()

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        response = server.process_command(line)
        print(json.dumps(response))
        sys.stdout.flush()
        if "traceback" in response:
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
