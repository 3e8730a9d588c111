"""Per-platform OAuth profiles.

Each platform is one entry in PROFILES. Everything that differs between
platforms during authorization and token exchange is a field here, so the
codec, token client and flow controller never branch on platform names.
"""

from dataclasses import dataclass
from types import MappingProxyType

from social_publisher.domain.enums import ChallengeEncoding, Platform


@dataclass(frozen=True)
class PlatformProfile:
    """Static OAuth description of a platform."""

    platform: Platform
    display_name: str
    auth_url: str
    token_url: str
    scopes: tuple[str, ...]
    scope_separator: str = " "
    extra_auth_params: tuple[tuple[str, str], ...] = ()
    requires_pkce: bool = False
    challenge_encoding: ChallengeEncoding = ChallengeEncoding.BASE64URL
    client_id_field: str = "client_id"
    # Key under which the token payload is nested in the response, if any
    token_payload_key: str | None = None

    def scope_string(self) -> str:
        return self.scope_separator.join(self.scopes)


YOUTUBE = PlatformProfile(
    platform=Platform.YOUTUBE,
    display_name="YouTube",
    auth_url="https://accounts.google.com/o/oauth2/auth",
    token_url="https://oauth2.googleapis.com/token",
    scopes=(
        "https://www.googleapis.com/auth/youtube.upload",
        "https://www.googleapis.com/auth/youtube",
    ),
    extra_auth_params=(("access_type", "offline"), ("prompt", "consent")),
)

TIKTOK = PlatformProfile(
    platform=Platform.TIKTOK,
    display_name="TikTok",
    auth_url="https://www.tiktok.com/v2/auth/authorize/",
    token_url="https://open.tiktokapis.com/v2/oauth/token/",
    scopes=("user.info.basic", "video.publish", "video.upload"),
    scope_separator=",",
    requires_pkce=True,
    challenge_encoding=ChallengeEncoding.HEX,
    client_id_field="client_key",
    token_payload_key="data",
)

INSTAGRAM = PlatformProfile(
    platform=Platform.INSTAGRAM,
    display_name="Instagram",
    auth_url="https://api.instagram.com/oauth/authorize",
    token_url="https://api.instagram.com/oauth/access_token",
    scopes=("instagram_basic", "instagram_content_publish"),
)

FACEBOOK = PlatformProfile(
    platform=Platform.FACEBOOK,
    display_name="Facebook",
    auth_url="https://www.facebook.com/v18.0/dialog/oauth",
    token_url="https://graph.facebook.com/v18.0/oauth/access_token",
    scopes=("pages_show_list", "pages_read_engagement", "pages_manage_posts", "publish_video"),
)

TWITTER = PlatformProfile(
    platform=Platform.TWITTER,
    display_name="Twitter",
    auth_url="https://twitter.com/i/oauth2/authorize",
    token_url="https://api.twitter.com/2/oauth2/token",
    scopes=("tweet.read", "tweet.write", "users.read", "offline.access"),
    requires_pkce=True,
    challenge_encoding=ChallengeEncoding.BASE64URL,
)

PROFILES: MappingProxyType[Platform, PlatformProfile] = MappingProxyType(
    {
        profile.platform: profile
        for profile in (YOUTUBE, TIKTOK, INSTAGRAM, FACEBOOK, TWITTER)
    }
)


def get_profile(platform: Platform | str) -> PlatformProfile:
    """Look up a profile, accepting the enum or its string value.

    Raises:
        ValueError: If the platform is unknown.
    """
    return PROFILES[Platform(platform)]
