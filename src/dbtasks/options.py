from dataclasses import dataclass

from psycopg.conninfo import make_conninfo

from libb import ConfigOptions, scriptname

__all__ = [
    'DatabaseOptions',
]


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`

    `timeout` is the connect timeout in seconds (0 leaves the libpq default).
    Connections always run in autocommit mode; each statement commits on
    its own.
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None

    def __post_init__(self):
        if self.drivername != 'postgresql':
            raise ValueError(f'drivername must be one of: [\'postgresql\'], got {self.drivername!r}')
        self.appname = self.appname or scriptname() or 'python_console'

    def conninfo(self) -> str:
        """Build a libpq connection string from the options.
        """
        params = {
            'host': self.hostname,
            'port': self.port or None,
            'user': self.username,
            'password': self.password,
            'dbname': self.database,
            'application_name': self.appname,
            'connect_timeout': self.timeout or None,
        }
        return make_conninfo(**{k: v for k, v in params.items() if v is not None})
