"""lambda-deploy - Versioned, rollback-capable deployments of serverless functions.

Packages a function artifact, stores it in an environment-namespaced object
store, rolls it out through a staged state machine and verifies it with a
health check.

Main features:
- Environment conflict policies (dev overwrites, staging warns, prod blocks)
- Version resolution from project files, git tags or revisions
- Bounded retries with exponential backoff and jitter
- Automatic and manual rollback to stored versions
- Slack, Teams and generic webhook notifications
"""

from lambda_deploy.config.loader import ConfigLoader
from lambda_deploy.lib.errors import ConfigError, DeploymentError, LambdaDeployError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigLoader",
    "ConfigError",
    "DeploymentError",
    "LambdaDeployError",
]
