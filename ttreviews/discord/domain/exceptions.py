from ttreviews.moderation.domain.exceptions import ConfigurationError


class DiscordConfigurationError(ConfigurationError):
    """Signing key or webhook endpoint missing or unusable."""
    pass
