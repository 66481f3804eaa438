import json
import logging
import os

"""
Connection parameters for the SharePoint client, from keyword arguments,
environment variables or a config file.

The config file is a JSON (or, if pyyaml is installed, YAML) document
with one section per site::

    {
        "default": {"sharepoint_url": "https://contoso.sharepoint.com/sites/team",
                    "sharepoint_password": "eyJ0eXAi..."},
        "archive": {"inherits": "default",
                    "sharepoint_url": "https://contoso.sharepoint.com/sites/archive"}
    }
"""

## Keys accepted by SharePointClient
CONNKEYS = {
    "url",
    "username",
    "password",
    "auth",
    "auth_type",
    "timeout",
    "ssl_verify_cert",
    "headers",
}


def config_section(config, section="default"):
    if section in config and "inherits" in config[section]:
        ret = config_section(config, config[section]["inherits"])
    else:
        ret = {}
    if section in config:
        ret.update(config[section])
    return ret


def read_config(fn, interactive_error=False):
    if not fn:
        cfgdir = f"{os.environ.get('HOME', '/')}/.config/"
        for config_file in (
            f"{cfgdir}/fluentsp/sharepoint.conf",
            f"{cfgdir}/fluentsp/sharepoint.yaml",
            f"{cfgdir}/fluentsp/sharepoint.json",
            "/etc/fluentsp/sharepoint.conf",
        ):
            cfg = read_config(config_file)
            if cfg:
                return cfg
        return None

    try:
        try:
            with open(fn, "rb") as config_file:
                return json.load(config_file)
        except json.decoder.JSONDecodeError:
            ## Late import, wrapped in try/except.  yaml is external module,
            ## and not included in the requirements as for now.
            try:
                import yaml

                try:
                    with open(fn, "rb") as config_file:
                        return yaml.load(config_file, yaml.Loader)
                except yaml.scanner.ScannerError:
                    logging.error(
                        f"config file {fn} exists but is neither valid json nor yaml.  Check the syntax."
                    )
            except ImportError:
                logging.error(
                    f"config file {fn} exists but is not valid json, and pyyaml is not installed."
                )

    except FileNotFoundError:
        logging.info("no config file found")
    except ValueError:
        if interactive_error:
            logging.error(
                "error in config file.  Be aware that the interactive configuration will ignore and overwrite the current broken config file",
                exc_info=True,
            )
        else:
            logging.error("error in config file.  It will be ignored", exc_info=True)
    return {}


def _from_environment():
    ret = {}
    for key in CONNKEYS:
        value = os.environ.get(f"FLUENTSP_{key.upper()}")
        if value:
            ret[key] = value
    if "timeout" in ret:
        ret["timeout"] = int(ret["timeout"])
    ## may also be a path to a CA bundle
    if ret.get("ssl_verify_cert", "").lower() in ("0", "false", "no"):
        ret["ssl_verify_cert"] = False
    ## objects, not strings
    ret.pop("headers", None)
    ret.pop("auth", None)
    return ret


def _from_config_file(config_file=None, section="default"):
    cfg = read_config(config_file)
    if not cfg:
        return {}
    ret = {}
    for key, value in config_section(cfg, section).items():
        ## Both "sharepoint_url" and plain "url" are accepted
        if key.startswith("sharepoint_"):
            key = key[len("sharepoint_") :]
        if key in CONNKEYS:
            ret[key] = value
    return ret


def get_connection_params(
    check_config_file=True,
    config_file=None,
    config_section="default",
    environment=True,
    **explicit,
):
    """
    Merge connection parameters.  Explicit keyword arguments win over
    ``FLUENTSP_*`` environment variables, which win over the config file.

    Returns None if no url could be found anywhere.
    """
    conn_params = {}
    if check_config_file:
        conn_params.update(_from_config_file(config_file, config_section))
    if environment:
        conn_params.update(_from_environment())
    conn_params.update({k: v for k, v in explicit.items() if k in CONNKEYS and v is not None})

    if not conn_params.get("url"):
        return None
    return conn_params
