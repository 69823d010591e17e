import cloudinary
import cloudinary.uploader
from fastapi import UploadFile

import config
from log import get_logger

logger = get_logger(__name__)

cloudinary.config(
    cloud_name=config.CLOUDINARY_CLOUD_NAME,
    api_key=config.CLOUDINARY_API_KEY,
    api_secret=config.CLOUDINARY_API_SECRET,
    secure=True,
)


def upload_prescription(file: UploadFile, public_id: str) -> str:
    """Upload a prescription to Cloudinary and return its secure URL."""
    # a retried transaction uploads again from the start of the stream
    file.file.seek(0)
    result = cloudinary.uploader.upload(
        file.file,
        public_id=public_id,
        folder=config.PRESCRIPTION_FOLDER,
        resource_type="auto",
    )
    logger.info("prescription_uploaded", public_id=public_id, filename=file.filename)
    return result["secure_url"]
