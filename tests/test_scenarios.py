import os

import pytest

from reclothes.scenarios import build_parser, main


@pytest.mark.parametrize("scenario", ["customers", "recycler1", "recycler2"])
def test_demo_scenarios_run_on_the_sandbox(scenario, capsys):
    assert main([scenario]) == 0
    out = capsys.readouterr().out
    assert "[demo] Done!" in out
    assert "[sandbox]" in out
    assert "reverted" not in out


def test_recycler_demo_prints_correlation_tokens(capsys):
    assert main(["recycler1"]) == 0
    out = capsys.readouterr().out
    assert out.count("correlation token 0x") == 5
    assert "[settlement] ReclothesShop.transferRGCForConfidentialTx" in out


def test_parser_rejects_unknown_scenarios():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["recycler3"])
    args = build_parser().parse_args(["recycler2", "--backend", "besu", "--env-file", ".env.test"])
    assert args.backend == "besu"
    assert args.env_file == ".env.test"


def test_deploy_prints_contract_addresses(capsys):
    assert main(["deploy"]) == 0
    out = capsys.readouterr().out
    for name in ("RESELLING_ADDRESS=0x", "REGENERATION_ADDRESS=0x", "RECLOTHES_SHOP_ADDRESS=0x"):
        assert name in out


def test_besu_backend_without_nodes_reports_the_error(tmp_path, capsys, monkeypatch):
    environ = {name: value for name, value in os.environ.items() if not name.startswith(("NODE", "ORION"))}
    monkeypatch.setattr(os, "environ", environ)
    env_file = tmp_path / ".env"
    env_file.write_text("CHAIN_ID=1337\n", encoding="utf-8")
    assert main(["recycler1", "--backend", "besu", "--env-file", str(env_file)]) == 1
    assert "[demo] ValueError" in capsys.readouterr().out
