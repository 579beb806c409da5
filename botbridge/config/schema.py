"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from botbridge.bus.events import DEFAULT_ACCOUNT_ID


class ForwardingConfig(BaseModel):
    """Bot-to-bot mention forwarding settings."""

    enabled: bool = True
    max_depth: int = Field(default=1, ge=0)


class FeishuAccountConfig(BaseModel):
    """One Feishu bot account (one app, one bot identity)."""

    enabled: bool = True
    app_id: str = ""
    app_secret: str = ""
    name: str = ""  # Display name other bots use to @mention this one
    encrypt_key: str = ""
    verification_token: str = ""
    group_policy: Literal["mention", "open"] = "mention"
    allow_from: list[str] = Field(default_factory=list)  # Allowed sender open_ids

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.app_secret)


class FeishuConfig(BaseModel):
    """Feishu channel configuration (multi-account)."""

    enabled: bool = True
    accounts: dict[str, FeishuAccountConfig] = Field(default_factory=dict)
    forwarding: ForwardingConfig = Field(default_factory=ForwardingConfig)

    def enabled_accounts(self) -> dict[str, FeishuAccountConfig]:
        """Accounts that are enabled and carry credentials."""
        return {
            account_id: account
            for account_id, account in self.accounts.items()
            if account.enabled and account.configured
        }

    def get_account(self, account_id: str | None) -> FeishuAccountConfig | None:
        return self.accounts.get(account_id or DEFAULT_ACCOUNT_ID)


class ChannelsConfig(BaseModel):
    """Configuration for chat channels."""

    feishu: FeishuConfig = Field(default_factory=FeishuConfig)


class AgentDefinition(BaseModel):
    """An agent that replies on behalf of one or more bot accounts."""

    id: str
    name: str = ""
    workspace: str = ""


class AgentsConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    default: str = "main"
    entries: list[AgentDefinition] = Field(default_factory=list, alias="list")


class PeerMatch(BaseModel):
    kind: Literal["group", "dm"] = "group"
    id: str


class BindingMatch(BaseModel):
    channel: str
    account_id: str | None = None
    peer: PeerMatch | None = None


class AgentBinding(BaseModel):
    """Route messages matching ``match`` to ``agent_id``."""

    agent_id: str
    match: BindingMatch


class Config(BaseModel):
    """Root configuration for botbridge."""

    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    bindings: list[AgentBinding] = Field(default_factory=list)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
