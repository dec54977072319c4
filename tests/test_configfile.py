import tomllib

import pytest

from rathole_panel import configfile
from rathole_panel.errors import ConfigFileError


def test_write_then_read(tmp_path):
    path = tmp_path / "server.toml"
    configfile.write_config(path, '[server]\nbind_addr = "0.0.0.0:2333"\n')
    assert configfile.read_config(path) == '[server]\nbind_addr = "0.0.0.0:2333"\n'


def test_read_missing_file(tmp_path):
    with pytest.raises(ConfigFileError, match="Cannot read"):
        configfile.read_config(tmp_path / "missing.toml")


def test_save_temp_config_writes_toml(tmp_path):
    data = {
        "client": {
            "remote_addr": "example.com:2333",
            "services": {"ssh": {"token": "secret", "local_addr": "127.0.0.1:22"}},
        }
    }

    path = configfile.save_temp_config(data, directory=tmp_path)

    assert path == str(tmp_path / "client_temp.toml")
    with open(path, "rb") as f:
        assert tomllib.load(f) == data


def test_save_temp_config_rejects_unserializable(tmp_path):
    with pytest.raises(ConfigFileError, match="TOML"):
        configfile.save_temp_config({"client": {"bad": object()}}, directory=tmp_path)
