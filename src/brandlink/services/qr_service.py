"""
QR code generation for certificates and supply chain tracking.

Images are rendered with `qrcode` and resized with Pillow to an exact pixel size.
`generate_qr` returns both the PNG bytes and a `data:` URL for inline display.
"""

import base64
import io
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

from brandlink.config import settings
from brandlink.managers.logging_manager import get_logger
from brandlink.models.media_models import MediaCategory
from brandlink.models.security_models import UserType
from brandlink.utils.errors import ValidationError

logger = get_logger(prefix="[QRService]")

ERROR_CORRECTION_LEVELS = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}

CERTIFICATE_QR_SIZE = 256
SUPPLY_CHAIN_QR_SIZE = 300
MIN_QR_SIZE = 64
MAX_QR_SIZE = 2048


def generate_qr(data: str, size: int = CERTIFICATE_QR_SIZE, error_correction: str = "M") -> Dict[str, Any]:
    """
    Render `data` as a square PNG QR code.

    Returns:
        dict with `png` (bytes), `data_url`, `size` and `error_correction`.
    """
    if not data:
        raise ValidationError("QR data cannot be empty")
    if not MIN_QR_SIZE <= size <= MAX_QR_SIZE:
        raise ValidationError(f"QR size must be between {MIN_QR_SIZE} and {MAX_QR_SIZE} pixels")
    level = error_correction.upper()
    if level not in ERROR_CORRECTION_LEVELS:
        raise ValidationError("Error correction must be one of L, M, Q, H")

    qr = qrcode.QRCode(error_correction=ERROR_CORRECTION_LEVELS[level], box_size=10, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white").get_image().convert("RGB")
    image = image.resize((size, size), Image.Resampling.NEAREST)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    png = buffer.getvalue()
    return {
        "png": png,
        "data_url": "data:image/png;base64," + base64.b64encode(png).decode("ascii"),
        "size": size,
        "error_correction": level,
    }


def certificate_payload(certificate: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    contract = certificate.get("contract_address")
    token_id = certificate.get("token_id")
    return {
        "type": "certificate_verification",
        "certificate_id": certificate.get("certificate_id"),
        "token_id": token_id,
        "contract_address": contract,
        "verification_url": certificate.get("verification_url")
        or f"{settings.FRONTEND_BASE_URL.rstrip('/')}/verify/{contract}/{token_id}",
        "timestamp": now.isoformat(),
    }


def generate_certificate_qr(certificate: Dict[str, Any]) -> Dict[str, Any]:
    payload = certificate_payload(certificate)
    result = generate_qr(json.dumps(payload, separators=(",", ":")), CERTIFICATE_QR_SIZE, "M")
    result["payload"] = payload
    return result


def generate_supply_chain_qr(product_id: str, business_id: str, event: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = {
        "type": "supply_chain_tracking",
        "product_id": product_id,
        "business_id": business_id,
        "event": event or {},
        "tracking_url": f"{settings.FRONTEND_BASE_URL.rstrip('/')}/track/{business_id}/{product_id}",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    result = generate_qr(json.dumps(payload, separators=(",", ":"), default=str), SUPPLY_CHAIN_QR_SIZE, "H")
    result["payload"] = payload
    return result


async def store_certificate_qr(business_id: str, certificate: Dict[str, Any], media_service) -> Dict[str, Any]:
    """Save a certificate's QR code as a `certificate` media item of the brand."""
    qr = generate_certificate_qr(certificate)
    media = await media_service.upload(
        owner_id=business_id,
        owner_type=UserType.BUSINESS,
        filename=f"qr_{certificate.get('certificate_id')}.png",
        content_type="image/png",
        content=qr["png"],
        category=MediaCategory.CERTIFICATE,
        description=f"Verification QR code for certificate {certificate.get('certificate_id')}",
        tags=["qr", "certificate"],
    )
    logger.info("Stored QR code for certificate %s as %s", certificate.get("certificate_id"), media["media_id"])
    return media
