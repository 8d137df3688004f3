import json
from click.testing import CliRunner
from cli import cli

DEPLOYER = "0x4444444444444444444444444444444444444444"


def test_generate_jwt_secret():
    result = CliRunner().invoke(cli, ["generate-jwt-secret", "--length", "16"])

    assert result.exit_code == 0
    assert result.stdout.startswith("JWT_SECRET_KEY=")


def test_deploy_prints_and_saves_record(tmp_path):
    result = CliRunner().invoke(
        cli,
        ["deploy", "--deployer", DEPLOYER, "--fund", "1", "--output-dir", str(tmp_path)],
    )

    assert result.exit_code == 0, result.output
    record = json.loads(result.stdout)
    assert record["deployer"] == DEPLOYER
    saved = json.loads((tmp_path / f"{record['network']}.json").read_text())
    assert saved["address"] == record["address"]


def test_deploy_underfunded_deployer_fails(tmp_path):
    result = CliRunner().invoke(
        cli,
        ["deploy", "--deployer", DEPLOYER, "--fund", "0.001", "--output-dir", str(tmp_path), "--no-persist"],
    )

    assert result.exit_code == 1
    assert not any(tmp_path.iterdir())
