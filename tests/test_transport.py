from __future__ import annotations

import pytest
import requests

from midnight_bridge.constants import API_KEY_HEADER, SIGNATURE_HEADER, TIMESTAMP_HEADER
from midnight_bridge.exceptions import (
    ContractError,
    NetworkError,
    ProofFailedError,
    SignatureRejectedError,
)
from midnight_bridge.http.signer import RequestSigner
from midnight_bridge.http.transport import BridgeTransport
from midnight_bridge.types import Address, TxHash


def _transport(session, sleep, **kwargs) -> BridgeTransport:
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("retry_sleep", 0.1)
    return BridgeTransport("http://bridge.test", session=session, sleep=sleep, **kwargs)


class TestRetries:
    def test_connection_failure_then_success_is_masked(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route(
            "GET",
            "/health",
            requests.ConnectionError("connection refused"),
            (200, {"status": "ok", "version": "1.2.0"}),
        )

        result = _transport(fake_bridge, recorded_sleep).get_health()

        assert result == {"status": "ok", "version": "1.2.0"}
        assert len(fake_bridge.calls_to("GET", "/health")) == 2
        assert recorded_sleep.calls == [pytest.approx(0.1)]

    def test_server_errors_retry_with_linear_delay(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route(
            "GET",
            "/network/metadata",
            (503, {"message": "unavailable"}),
            (502, {"message": "bad gateway"}),
            (200, {"chainId": "midnight-devnet", "name": "devnet"}),
        )

        metadata = _transport(fake_bridge, recorded_sleep).get_network_metadata()

        assert metadata.chain_id == "midnight-devnet"
        assert recorded_sleep.calls == [pytest.approx(0.1), pytest.approx(0.2)]

    def test_request_timeout_status_is_retried(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/health", (408, {}), (200, {"status": "ok"}))

        assert _transport(fake_bridge, recorded_sleep).health_check() is True

    def test_retries_are_bounded(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/health", requests.ConnectionError("down"))

        with pytest.raises(NetworkError) as excinfo:
            _transport(fake_bridge, recorded_sleep).get_health()

        assert "Failed to connect" in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
        assert len(fake_bridge.calls) == 3

    def test_timeout_maps_to_network_error(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/health", requests.Timeout("read timed out"))

        with pytest.raises(NetworkError, match="timed out after 2.5 seconds"):
            _transport(fake_bridge, recorded_sleep, timeout=2.5, max_retries=0).get_health()

        assert fake_bridge.calls[0].kwargs["timeout"] == 2.5

    def test_signature_rejection_is_not_retried(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/tx/submit", (401, {"error": "Invalid signature"}))

        with pytest.raises(SignatureRejectedError, match="Invalid signature") as excinfo:
            _transport(fake_bridge, recorded_sleep).submit_transaction({"entrypoint": "x"})

        assert excinfo.value.status_code == 401
        assert len(fake_bridge.calls) == 1
        assert recorded_sleep.calls == []

    def test_client_errors_are_terminal(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/tx/submit", (422, {"message": "Unknown entrypoint"}))

        with pytest.raises(NetworkError, match="Unknown entrypoint") as excinfo:
            _transport(fake_bridge, recorded_sleep).submit_transaction({"entrypoint": "x"})

        assert excinfo.value.status_code == 422
        assert len(fake_bridge.calls) == 1


class TestResponseHandling:
    def test_missing_tx_hash_names_the_field(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/tx/submit", (200, {"invalid": "response"}))

        with pytest.raises(NetworkError, match="Missing tx_hash in response"):
            _transport(fake_bridge, recorded_sleep).submit_transaction({"entrypoint": "x"})

    def test_camel_case_tx_hash_is_accepted(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/tx/submit", (200, {"txHash": "0xabc"}))

        assert _transport(fake_bridge, recorded_sleep).submit_transaction({}) == TxHash("0xabc")

    def test_snake_case_wins_over_camel_case(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/tx/submit", (200, {"txHash": "0xcamel", "tx_hash": "0xsnake"}))

        assert str(_transport(fake_bridge, recorded_sleep).submit_transaction({})) == "0xsnake"

    def test_unparsable_error_body_is_invalid_response(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/health", (500, fake_bridge.NOT_JSON))

        with pytest.raises(NetworkError, match="invalid response") as excinfo:
            _transport(fake_bridge, recorded_sleep, max_retries=0).get_health()

        assert excinfo.value.status_code == 500

    def test_non_object_success_body_is_rejected(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/wallet/balance", (200, ["not", "an", "object"]))

        with pytest.raises(NetworkError, match="expected a JSON object"):
            _transport(fake_bridge, recorded_sleep).get_wallet_balance()

    def test_unhealthy_status_raises_and_health_check_returns_false(
        self, fake_bridge, recorded_sleep
    ) -> None:
        fake_bridge.route("GET", "/health", (200, {"status": "error", "message": "proof server down"}))
        transport = _transport(fake_bridge, recorded_sleep)

        with pytest.raises(NetworkError, match="proof server down"):
            transport.get_health()
        assert transport.health_check() is False

    def test_transaction_status_is_normalised(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route(
            "GET", "/tx/0xdeadbeef/status", (200, {"status": "CONFIRMED", "blockHeight": 42})
        )

        status = _transport(fake_bridge, recorded_sleep).get_transaction_status("0xdeadbeef")

        assert status.status == "confirmed"
        assert status.block_height == 42
        assert status.is_final()

    def test_transaction_status_requires_status(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/tx/0x1/status", (200, {"block_height": 1}))

        with pytest.raises(NetworkError, match="Missing status in response"):
            _transport(fake_bridge, recorded_sleep).get_transaction_status(TxHash("0x1"))

    @pytest.mark.parametrize("height", ["tip", [7], {"n": 7}])
    def test_non_numeric_block_height_is_invalid_response(
        self, fake_bridge, recorded_sleep, height
    ) -> None:
        fake_bridge.route(
            "GET", "/tx/0x1/status", (200, {"status": "confirmed", "block_height": height})
        )

        with pytest.raises(NetworkError, match="invalid response") as excinfo:
            _transport(fake_bridge, recorded_sleep).get_transaction_status(TxHash("0x1"))

        assert excinfo.value.endpoint == "/tx/0x1/status"
        assert isinstance(excinfo.value.__cause__, (TypeError, ValueError))


class TestOperations:
    def test_call_contract_sends_arguments_and_parses_result(
        self, fake_bridge, recorded_sleep
    ) -> None:
        fake_bridge.route("POST", "/contract/call", (200, {"result": 1000, "success": True}))

        result = _transport(fake_bridge, recorded_sleep).call_contract(
            "A", "balance", {"holder": "B"}
        )

        assert result.value == 1000
        assert result.success is True
        assert fake_bridge.calls[0].json == {
            "contract_address": "A",
            "entrypoint": "balance",
            "arguments": {"holder": "B"},
        }

    def test_call_contract_failure_becomes_contract_error(
        self, fake_bridge, recorded_sleep
    ) -> None:
        fake_bridge.route("POST", "/contract/call", (400, {"message": "no such contract"}))

        with pytest.raises(ContractError, match="no such contract") as excinfo:
            _transport(fake_bridge, recorded_sleep).call_contract("A", "balance")

        assert excinfo.value.contract_address == "A"
        assert isinstance(excinfo.value.__cause__, NetworkError)

    def test_generate_proof_requires_non_empty_proof(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/proof/generate", (200, {"proof": "", "public_outputs": {}}))

        with pytest.raises(ProofFailedError, match="empty proof"):
            _transport(fake_bridge, recorded_sleep).generate_proof(
                "token", "transfer", {"to": "B"}, {"secret": "s"}
            )

    def test_generate_proof_parses_response(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route(
            "POST",
            "/proof/generate",
            (200, {"proof": "0xproof", "publicOutputs": {"ok": True}, "generation_time": 1.5}),
        )

        proof = _transport(fake_bridge, recorded_sleep).generate_proof(
            "token", "transfer", {"to": "B"}, {"secret": "s"}
        )

        assert proof.proof == "0xproof"
        assert proof.public_outputs == {"ok": True}
        assert proof.generation_time == 1.5
        assert fake_bridge.calls[0].json["private_inputs"] == {"secret": "s"}

    def test_generate_proof_transport_failure(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/proof/generate", requests.ConnectionError("down"))

        with pytest.raises(ProofFailedError) as excinfo:
            _transport(fake_bridge, recorded_sleep, max_retries=0).generate_proof(
                "token", "transfer", {}, {}
            )

        assert isinstance(excinfo.value.__cause__, NetworkError)

    def test_deploy_contract(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route(
            "POST", "/contract/deploy", (200, {"contractAddress": "C", "txHash": "0x1"})
        )

        result = _transport(fake_bridge, recorded_sleep).deploy_contract(
            "contracts/token.compact", {"supply": 10}
        )

        assert result.contract_address == "C"
        assert result.tx_hash == TxHash("0x1")

    def test_deploy_without_address_fails(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/contract/deploy", (200, {"status": "queued"}))

        with pytest.raises(ContractError, match="Missing contract_address"):
            _transport(fake_bridge, recorded_sleep).deploy_contract("contracts/token.compact")

    def test_join_contract_failure(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("POST", "/contract/join", (404, {"error": "unknown contract"}))

        with pytest.raises(ContractError, match="Failed to join contract at C"):
            _transport(fake_bridge, recorded_sleep).join_contract("C")

    def test_wallet_operations(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/wallet/address", (200, {"address": "mn_addr_1"}))
        fake_bridge.route("GET", "/wallet/balance", (200, {"balance": "5000"}))
        fake_bridge.route("POST", "/wallet/transfer", (200, {"tx_hash": "0xfeed"}))
        transport = _transport(fake_bridge, recorded_sleep)

        assert transport.get_wallet_address() == Address("mn_addr_1")
        assert transport.get_wallet_balance("mn_addr_2") == {"balance": "5000"}
        assert transport.wallet_transfer("mn_addr_2", 1000) == TxHash("0xfeed")

        balance_call = fake_bridge.calls_to("GET", "/wallet/balance")[0]
        transfer_call = fake_bridge.calls_to("POST", "/wallet/transfer")[0]
        assert balance_call.query == {"address": ["mn_addr_2"]}
        assert transfer_call.json == {"to_address": "mn_addr_2", "amount": "1000"}

    def test_wallet_address_missing(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/wallet/address", (200, {}))

        with pytest.raises(NetworkError, match="Missing address in response"):
            _transport(fake_bridge, recorded_sleep).get_wallet_address()


class TestHeaders:
    def test_requests_are_signed_when_signer_configured(self, fake_bridge, recorded_sleep) -> None:
        signer = RequestSigner("secret")
        fake_bridge.route("POST", "/tx/submit", (200, {"tx_hash": "0x1"}))

        _transport(fake_bridge, recorded_sleep, signer=signer).submit_transaction({"amount": 1})

        sent = fake_bridge.calls[0]
        assert TIMESTAMP_HEADER in sent.headers
        assert SIGNATURE_HEADER in sent.headers
        assert signer.verify_headers(sent.request) is True

    def test_each_retry_is_signed_again(self, fake_bridge, recorded_sleep, monkeypatch) -> None:
        signer = RequestSigner("secret")
        timestamps = iter([100, 200])
        monkeypatch.setattr(signer, "_clock", lambda: next(timestamps))
        fake_bridge.route("GET", "/health", (503, {}), (200, {"status": "ok"}))

        _transport(fake_bridge, recorded_sleep, signer=signer).get_health()

        assert [call.headers[TIMESTAMP_HEADER] for call in fake_bridge.calls] == ["100", "200"]

    def test_unsigned_without_signer(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/health", (200, {"status": "ok"}))

        _transport(fake_bridge, recorded_sleep).get_health()

        assert SIGNATURE_HEADER not in fake_bridge.calls[0].headers

    def test_default_and_api_key_headers(self, fake_bridge, recorded_sleep) -> None:
        fake_bridge.route("GET", "/health", (200, {"status": "ok"}))

        _transport(fake_bridge, recorded_sleep, api_key="key-123").get_health()

        headers = fake_bridge.calls[0].headers
        assert headers[API_KEY_HEADER] == "key-123"
        assert headers["Accept"] == "application/json"
        assert headers["User-Agent"].startswith("midnight-bridge-python")

    def test_context_manager_closes_session(self, fake_bridge, recorded_sleep) -> None:
        with _transport(fake_bridge, recorded_sleep):
            pass

        assert fake_bridge.closed is True
