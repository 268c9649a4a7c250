from os import environ

import yaml
from dotenv import find_dotenv
from pydantic import ValidationError

from adherence.helpers.config_models.root import RootModel


def load_config() -> RootModel:
    """
    Load the configuration.

    Sources, the first available wins:
    1. JSON from the `CONFIG_JSON` env var
    2. YAML file from the `CONFIG_FILE` env var, defaults to `config.yaml` searched from the working directory up

    All values have defaults, the service runs in memory mode without any configuration.
    """
    config_env = "CONFIG_JSON"
    config_file = environ.get("CONFIG_FILE", "config.yaml")

    # Try to load JSON from env
    if config_env in environ:
        config = RootModel.model_validate_json(environ[config_env])
        print(f'Config loaded from env "{config_env}"')  # noqa: T201
        return config

    # Try to load YAML from file
    print(f'Cannot find env "{config_env}", trying to load from file')  # noqa: T201
    path = find_dotenv(filename=config_file, usecwd=True)

    # Use defaults if file not found
    if not path:
        print(f'Cannot find config file "{config_file}", using defaults')  # noqa: T201
        return RootModel()

    # Load config from file
    with open(
        encoding="utf-8",
        file=path,
    ) as f:
        # An empty file is a valid config
        config = RootModel.model_validate(yaml.safe_load(f) or {})
        print(f'Config loaded from file "{path}"')  # noqa: T201
        return config


def _pretty_errors(error: ValidationError) -> str:
    res = "Config values are not valid:"
    for i, details in enumerate(error.errors()):
        location = ".".join(str(loc) for loc in details["loc"])
        res += f"\n{i + 1}. At {location}: {details['msg']} (input value: {details['input']})"
    return res


# Load config
try:
    CONFIG = load_config()
except ValidationError as e:
    raise ValueError(_pretty_errors(e)) from e
