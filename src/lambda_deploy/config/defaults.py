"""Default locations and names for lambda-deploy configuration."""

CONFIG_FILENAMES: tuple[str, ...] = (
    "lambda-deploy-config.yml",
    "lambda-deploy-config.yaml",
)

# Searched in order, relative to the project root
CONFIG_SEARCH_DIRS: tuple[str, ...] = (
    ".github/config",
    "config",
    ".config",
    ".",
)

ENV_FILENAME = ".env"
