from __future__ import annotations

import httpx
import pytest

import main
from main import DEFAULT_HOST, DEFAULT_PORT, _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.host == DEFAULT_HOST
    assert args.port == DEFAULT_PORT


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "0.0.0.0", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "0.0.0.0"
    assert args.port == 8080


def test_config_option_before_subcommand() -> None:
    args = _parse_args(["--config", "chat.yaml", "rooms"])
    assert args.command == "rooms"
    assert args.config == "chat.yaml"


def test_config_option_before_serve_options() -> None:
    args = _parse_args(["--config", "chat.yaml", "--port", "9000"])
    assert args.command == "serve"
    assert args.config == "chat.yaml"
    assert args.port == 9000

    args = _parse_args(["--config=chat.yaml", "--host", "0.0.0.0"])
    assert args.command == "serve"
    assert args.config == "chat.yaml"
    assert args.host == "0.0.0.0"


def test_register_subcommand_takes_name_and_email() -> None:
    args = _parse_args(["register", "Ana", "ana@x.com"])
    assert args.command == "register"
    assert (args.name, args.email) == ("Ana", "ana@x.com")


@pytest.fixture()
def cli_backend(monkeypatch, backend, settings):
    monkeypatch.setattr(main, "_load_settings", lambda config: settings)
    monkeypatch.setattr(
        main,
        "_build_client",
        lambda current: main.GraphQLClient(
            current.graphql_http_url,
            current.admin_secret,
            transport=httpx.MockTransport(backend.handle),
        ),
    )
    return backend


def test_rooms_command_lists_rooms(cli_backend, capsys) -> None:
    ana = cli_backend.add_user("Ana", "ana@x.com", "p1")
    cli_backend.add_room("General", ana["id"])

    assert main.main(["rooms"]) == 0

    output = capsys.readouterr().out
    assert "1 room(s) found:" in output
    assert "General" in output
    assert "Ana" in output


def test_rooms_command_reports_backend_failure(cli_backend, capsys) -> None:
    cli_backend.fail_next = 1

    assert main.main(["rooms"]) == 1
    assert "Failed to list rooms: Service unavailable" in capsys.readouterr().err


def test_register_command_prompts_for_password(cli_backend, monkeypatch, capsys) -> None:
    monkeypatch.setattr(main, "getpass", lambda prompt: "p1")

    assert main.main(["register", "Ana", "Ana@X.com"]) == 0

    stored = next(iter(cli_backend.users.values()))
    assert stored["email"] == "ana@x.com"
    assert "Registered user" in capsys.readouterr().out


def test_register_command_aborts_on_mismatched_passwords(cli_backend, monkeypatch) -> None:
    answers = iter(["p1", "p2"] * 3)
    monkeypatch.setattr(main, "getpass", lambda prompt: next(answers))

    assert main.main(["register", "Ana", "ana@x.com"]) == 1
    assert cli_backend.requests == []


def test_invalid_configuration_exits(monkeypatch) -> None:
    def broken(config):
        raise ValueError("poll_interval must be greater than zero")

    monkeypatch.setattr(main, "_load_settings", broken)

    with pytest.raises(SystemExit):
        main.main(["rooms"])
