"""Runtime settings resolved from the process environment."""

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import SettingsConfigDict

from playmaster.models import SettingsModel


class Settings(SettingsModel):
    """Runtime settings.

    Every field is read from a `PLAYMASTER_`-prefixed environment
    variable, for example `PLAYMASTER_REMOTE_PASSWORD`.
    """

    model_config = SettingsConfigDict(env_prefix='PLAYMASTER_')

    remote_password: SecretStr | None = Field(
        default=None,
        title='Remote password',
        description='SSH password of the remote target. Used in remote mode only.',
    )

    remote_user: str = Field(
        default='root',
        title='Remote user',
        description='SSH user when the remote address does not name one.',
    )

    remote_dir: str = Field(
        default='playmaster_app',
        title='Remote directory',
        description='Working directory on the remote target, relative to its home.',
    )

    log_dir: Path = Field(
        default=Path('.playmaster', 'logs'),
        title='Log directory',
        description='Directory receiving the output of asynchronous hooks.',
    )

    ssh_options: str = Field(
        default='',
        title='SSH options',
        description='Extra options passed to every ssh invocation, shell-split.',
    )
