from __future__ import annotations

import json
from pathlib import Path

import pytest

from terraview.config import (
    DEFAULT_GROUPING_ELEMENTS,
    ViewConfig,
    build_parser,
    dump_config,
    load_view_config,
)
from terraview.util.errors import ConfigError

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config" / "terraview.yaml"

_ENV_VARS = (
    "TERRAVIEW_STATE",
    "TERRAVIEW_GRAPH_FILE",
    "TERRAVIEW_FORMAT",
    "TERRAVIEW_OUTPUT",
    "TERRAVIEW_ICON_PATH",
    "TERRAVIEW_STRICT",
    "TERRAVIEW_JSON_LOGS",
    "TERRAVIEW_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    command, cfg = load_view_config(argv=["print"])

    assert command == "print"
    assert cfg.path == Path(".")
    assert cfg.state is None
    assert cfg.grouping_elements == DEFAULT_GROUPING_ELEMENTS
    assert cfg.important_attributes == {}
    assert cfg.format == "png"
    assert cfg.label_location == "b"
    assert cfg.reconcile_mismatched == "prune"
    assert cfg.strict is False
    assert cfg.attributes_for("azurerm_subnet") == ()


def test_state_defaults_to_working_directory_tfstate(tmp_path: Path) -> None:
    workdir = tmp_path / "infra"
    workdir.mkdir()
    (workdir / "terraform.tfstate").write_text("{}", encoding="utf-8")

    _, cfg = load_view_config(argv=["inspect", str(workdir)])

    assert cfg.state == workdir / "terraform.tfstate"


def test_repo_sample_config_loads() -> None:
    _, cfg = load_view_config(argv=["print", "--config", str(REPO_CONFIG)])

    assert "azurerm_subnet" in cfg.grouping_elements
    assert cfg.attributes_for("azurerm_subnet") == ("address_prefixes",)
    assert cfg.attributes_for("azurerm_linux_virtual_machine") == ("size",)
    assert cfg.base_margin == 8


def test_default_config_file_is_picked_up_from_cwd(tmp_path: Path) -> None:
    (tmp_path / "terraview.yaml").write_text("label_location: t\nbase_margin: 4\n", encoding="utf-8")

    _, cfg = load_view_config(argv=["print"])

    assert cfg.label_location == "t"
    assert cfg.base_margin == 4


def test_important_attributes_mapping_form_in_json(tmp_path: Path) -> None:
    path = tmp_path / "view.json"
    path.write_text(
        json.dumps({"important_attributes": {"aws_subnet": "cidr_block, availability_zone"}}),
        encoding="utf-8",
    )

    _, cfg = load_view_config(argv=["print", "--config", str(path)])

    assert cfg.attributes_for("aws_subnet") == ("cidr_block", "availability_zone")


def test_precedence_file_then_env_then_cli(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "view.yaml"
    path.write_text("format: svg\noutput: from-file\nstrict: false\n", encoding="utf-8")
    monkeypatch.setenv("TERRAVIEW_FORMAT", "pdf")
    monkeypatch.setenv("TERRAVIEW_STRICT", "1")

    _, cfg = load_view_config(argv=["print", "--config", str(path)])
    assert (cfg.format, cfg.output, cfg.strict) == ("pdf", "from-file", True)

    _, cfg = load_view_config(argv=["print", "--config", str(path), "-f", "dot", "--no-strict"])
    assert (cfg.format, cfg.strict) == ("dot", False)


def test_unknown_config_keys_warn(tmp_path: Path) -> None:
    path = tmp_path / "view.yaml"
    path.write_text("colour: blue\n", encoding="utf-8")

    with pytest.warns(UserWarning, match="colour"):
        load_view_config(argv=["print", "--config", str(path)])


@pytest.mark.parametrize(
    "content",
    [
        "label_location: left\n",
        "base_margin: -1\n",
        "base_margin: wide\n",
        "reconcile_mismatched: merge\n",
        "important_attributes: 3\n",
        "important_attributes:\n  - attributes: [name]\n",
        "- not\n- a mapping\n",
        "grouping_elements: {a: 1}\n",
    ],
)
def test_invalid_config_is_rejected(tmp_path: Path, content: str) -> None:
    path = tmp_path / "view.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_view_config(argv=["print", "--config", str(path)])


def test_missing_config_file_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_view_config(argv=["print", "--config", str(tmp_path / "nope.yaml")])


def test_unparseable_yaml_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "view.yaml"
    path.write_text("grouping_elements: [unterminated\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_view_config(argv=["print", "--config", str(path)])


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_dump_config_is_json_serializable() -> None:
    cfg = ViewConfig(important_attributes={"aws_subnet": ("cidr_block",)}, state=Path("s.tfstate"))

    dumped = dump_config(cfg)

    assert json.loads(json.dumps(dumped))["important_attributes"] == {"aws_subnet": ["cidr_block"]}
    assert dumped["state"] == "s.tfstate"
