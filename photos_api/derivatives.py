"""
ThumbnailGenerator - Produces thumbnails and reads image metadata with Pillow.
"""

import logging
import os
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from PIL import ExifTags, Image, ImageOps

THUMBNAIL_WIDTH = 300
THUMBNAIL_HEIGHT = 300

EXIF_DATETIME_FORMATS = [
    "%Y:%m:%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
]


def _parse_taken_at(value) -> Optional[str]:
    if not value:
        return None
    for fmt in EXIF_DATETIME_FORMATS:
        try:
            return datetime.strptime(str(value).strip(), fmt).isoformat()
        except ValueError:
            continue
    return None


def _clean(value) -> Optional[str]:
    text = str(value or "").strip().strip("\x00")
    return text or None


class ThumbnailGenerator:
    """
    Generates thumbnails from original images using Pillow.

    Thumbnails are written as WEBP files next to the staged uploads.
    """

    FORMAT = 'WEBP'
    EXTENSION = '.webp'
    CONTENT_TYPE = 'image/webp'
    FITS = ('cover', 'contain')

    def __init__(
        self,
        output_dir: str = 'uploads',
        fit: str = 'cover',
        quality: int = 80,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize thumbnail generator.

        Args:
            output_dir: Directory where thumbnail files are written
            fit: 'cover' fills the box and crops the overflow,
                 'contain' fits the whole image inside the box
            quality: WEBP quality for output (default: 80)
            logger: Optional logger instance
        """
        if fit not in self.FITS:
            raise ValueError(f"Unknown thumbnail fit: {fit!r}")
        self.output_dir = output_dir
        self.fit = fit
        self.quality = quality
        self.logger = logger or logging.getLogger(__name__)

    def new_output_path(self) -> str:
        """Return a fresh, unused path for a thumbnail file."""
        return os.path.join(self.output_dir, f"{uuid.uuid4().hex}{self.EXTENSION}")

    def resize(
        self,
        source_path: str,
        width: int = THUMBNAIL_WIDTH,
        height: int = THUMBNAIL_HEIGHT,
        output_path: Optional[str] = None
    ) -> str:
        """
        Write a resized copy of the source image.

        Args:
            source_path: Path of the original image; never modified
            width: Width of the target box
            height: Height of the target box
            output_path: Where to write the thumbnail (default: new file
                in output_dir)

        Returns:
            Path of the written thumbnail
        """
        output_path = output_path or self.new_output_path()
        os.makedirs(os.path.dirname(output_path) or '.', exist_ok=True)

        try:
            with Image.open(source_path) as img:
                img = ImageOps.exif_transpose(img)
                img = self._convert_color_mode(img)

                if self.fit == 'cover':
                    img = ImageOps.fit(img, (width, height), Image.Resampling.LANCZOS)
                else:
                    img.thumbnail((width, height), Image.Resampling.LANCZOS)

                img.save(output_path, format=self.FORMAT, quality=self.quality)

        except Exception as e:
            self.logger.error("Error generating thumbnail for %s: %s", source_path, e)
            raise

        self.logger.debug("Thumbnail written: %s", output_path)
        return output_path

    def extract_metadata(self, source_path: str) -> Dict[str, Any]:
        """
        Read structural metadata of an image.

        Returns:
            Dict with format, width, height, mode, has_alpha and size, plus
            dpi, orientation and camera fields when the file carries them
        """
        with Image.open(source_path) as img:
            width, height = img.size
            exif = img.getexif()
            metadata = {
                'format': img.format,
                'width': width,
                'height': height,
                'mode': img.mode,
                'has_alpha': 'A' in img.getbands() or 'transparency' in img.info,
                'size': os.path.getsize(source_path),
                'dpi': [float(v) for v in img.info['dpi']] if 'dpi' in img.info else None,
                'orientation': exif.get(ExifTags.Base.Orientation),
                'camera_make': _clean(exif.get(ExifTags.Base.Make)),
                'camera_model': _clean(exif.get(ExifTags.Base.Model)),
            }

            exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
            metadata['taken_at'] = _parse_taken_at(
                exif_ifd.get(ExifTags.Base.DateTimeOriginal)
                or exif.get(ExifTags.Base.DateTime)
            )

        return {key: value for key, value in metadata.items() if value is not None}

    def _convert_color_mode(self, img: Image.Image) -> Image.Image:
        """Convert image to a mode WEBP can encode."""
        if img.mode in ('RGB', 'RGBA'):
            return img
        if img.mode in ('LA', 'PA') or (img.mode == 'P' and 'transparency' in img.info):
            return img.convert('RGBA')
        return img.convert('RGB')
