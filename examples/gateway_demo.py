# examples/gateway_demo.py
# Run with: python examples/gateway_demo.py
#
# Generates throwaway crypto material, starts a development peer in-process
# and walks one certificate through its whole lifecycle over the gateway.

import logging
import tempfile
from pathlib import Path

from certledger.crypto.pki import generate_dev_crypto
from certledger.gateway import CertificateClient, GatewayConfig, GatewaySession
from certledger.peer import PeerConfig, PeerServer

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


def main():
    with tempfile.TemporaryDirectory() as tmp:
        crypto = generate_dev_crypto(Path(tmp) / "crypto")

        with PeerServer.from_config(PeerConfig.from_crypto_path(crypto.root, listen_address="127.0.0.1:0")) as peer:
            config = GatewayConfig.from_crypto_path(crypto.root, peer_endpoint=f"127.0.0.1:{peer.port}")

            with GatewaySession(config) as session:
                client = CertificateClient(session)

                print("\n--> Bootstrap: seeding the ledger")
                client.init_ledger()

                print("\n--> GetAllAssets")
                for cert in client.list_all():
                    print(f"    {cert.record_id}  {cert.subject_id}  {cert.status}")

                print("\n--> CreateAsset CERT-DEMO-0001")
                client.create({
                    "recordId": "CERT-DEMO-0001",
                    "subjectId": "learner100",
                    "issuer": {"issuerId": "issuer123", "issueDate": "2025-12-15T09:00:00Z"},
                    "approval": {"approverIds": [], "stages": [], "approved": False, "approvedDate": None},
                    "payload": {"name": "Forklift Operator Certificate", "level": "Level 2"},
                    "status": "Pending",
                })

                print("\n--> TransferAsset CERT-DEMO-0001 -> learner200")
                previous = client.transfer("CERT-DEMO-0001", "learner200")
                print(f"    previous subject: {previous}")

                print("\n--> ReadAsset CERT-DEMO-0001")
                print(f"    {client.read_raw('CERT-DEMO-0001')}")

                print("\n--> DeleteAsset CERT-DEMO-0001")
                client.delete("CERT-DEMO-0001")
                print(f"    exists afterwards: {client.exists('CERT-DEMO-0001')}")

            print(f"\nLedger height: {peer.ledger.height} blocks")


if __name__ == "__main__":
    main()
