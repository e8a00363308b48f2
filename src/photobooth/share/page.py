"""Render the mobile share landing page."""

from typing import Optional

from jinja2 import Environment, PackageLoader, select_autoescape

DEFAULT_TWITTER_MESSAGE = (
    "Just took my photo with the @sogni_protocol AI photobooth at https://photobooth.sogni.ai"
)

_env = Environment(
    loader=PackageLoader("photobooth.share", "templates"),
    autoescape=select_autoescape(["html"]),
)


def render_mobile_share_page(
    image_url: str,
    video_url: Optional[str] = None,
    is_video: bool = False,
    twitter_message: Optional[str] = None,
) -> str:
    """
    Build the share page HTML with Open Graph and Twitter card tags.

    Video pages use the `player` card with the image as poster; photo
    pages use `summary_large_image`.
    """
    is_video = bool(is_video and video_url)
    return _env.get_template("mobile_share.html").render(
        image_url=image_url,
        video_url=video_url,
        is_video=is_video,
        media_description="AI-generated video" if is_video else "AI-generated photo",
        share_config={
            "mediaUrl": video_url if is_video else image_url,
            "fileExtension": "mp4" if is_video else "jpg",
            "mimeType": "video/mp4" if is_video else "image/jpeg",
            "message": twitter_message or DEFAULT_TWITTER_MESSAGE,
        },
    )
