"""Smart Home Dashboard configuration."""

import secrets

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    app_name: str = "Smart Home Automation"
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: str = "INFO"

    # Hosted backend (auth + table store)
    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str = ""
    request_timeout: float = 10.0

    # Mobile numbers are turned into email-shaped login handles
    handle_domain: str = "smarthome.app"
    signup_redirect_url: str = "/"

    # Browser session cookie
    cookie_name: str = "smarthome_client"
    cookie_secret: str = ""
    cookie_algorithm: str = "HS256"
    cookie_max_age: int = 604800  # 7 days
    client_idle_timeout: int = 86400  # drop per-browser state after a day without requests

    model_config = {"env_prefix": "SMARTHOME_"}

    @property
    def auth_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/auth/v1"

    @property
    def rest_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    def ensure_secrets(self) -> None:
        """Generate the cookie signing secret if not set.

        Not persisted: client state lives in memory, so a restart drops every
        client anyway.
        """
        if not self.cookie_secret:
            self.cookie_secret = secrets.token_urlsafe(32)


settings = Settings()
settings.ensure_secrets()
