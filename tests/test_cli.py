from __future__ import annotations

import json

from abxclient.cli import main
from abxclient.export import write_packets
from abxclient.mock import MockExchange, sample_packets
from abxclient.session import SessionClient, SessionState, run_session
from abxclient.store import PacketStore


def test_fetch_writes_sorted_document(tmp_path, capsys):
    out = tmp_path / "stock_packet.json"
    with MockExchange(sample_packets(14), omit={2, 5, 14}, chunk_size=7) as ex:
        host, port = ex.address
        rc = main(["fetch", "--host", host, "--port", str(port), "--timeout-ms", "2000", "--out", str(out), "--json"])

    assert rc == 0
    records = json.loads(out.read_text())
    assert [r["PacketSequence"] for r in records] == list(range(1, 14))
    assert set(records[0]) == {"Symbol", "BuySellIndicator", "Quantity", "Price", "PacketSequence"}
    summary = json.loads(capsys.readouterr().out)
    assert summary["state"] == "done"
    # 14 was never streamed, so the high-water mark stops at 13
    assert summary["gaps"] == 2


def test_fetch_exports_partial_result_on_failure(tmp_path):
    with MockExchange([]) as ex:
        host, port = ex.address
    out = tmp_path / "out.json"
    rc = main(["fetch", "--host", host, "--port", str(port), "--out", str(out)])
    assert rc == 1
    assert json.loads(out.read_text()) == []


def test_resend_prints_packet(capsys):
    with MockExchange(sample_packets(3)) as ex:
        host, port = ex.address
        rc = main(["resend", "--host", host, "--port", str(port), "--timeout-ms", "2000", "3"])
    assert rc == 0
    assert json.loads(capsys.readouterr().out)["PacketSequence"] == 3


def test_resend_out_of_range_fails():
    assert main(["resend", "--port", "1", "256"]) == 1


def test_reset_mid_stream_still_completes():
    with MockExchange(sample_packets(10), drop_after=4) as ex:
        store = PacketStore()
        metrics = run_session(SessionClient(*ex.address, timeout_ms=2000), store)
    assert metrics.state == SessionState.DONE
    assert [p.sequence for p in store.sorted()] == list(range(1, 11))


def test_write_packets_keeps_given_order(tmp_path):
    path = tmp_path / "x.json"
    assert write_packets(sample_packets(3), str(path)) == 3
    doc = json.loads(path.read_text())
    assert doc[0] == {"Symbol": "MSFT", "BuySellIndicator": "B", "Quantity": 10, "Price": 101, "PacketSequence": 1}
