import base64
from io import BytesIO
from typing import Any, Dict, Optional

import qrcode


def qr_data_uri(data: str, box_size: int = 8, border: int = 4) -> str:
    """
    Encode `data` en QR code PNG et le retourne sous forme de data URI base64
    (affichable tel quel par le client: <Image source={{uri}} />).
    """
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    buffered = BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buffered, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffered.getvalue()).decode("ascii")


def ticket_qr_payload(ticket: Dict[str, Any]) -> Optional[str]:
    """Valeur scannée à l'entrée: jeton du billet, à défaut son identifiant."""
    value = ticket.get("token") or ticket.get("ticketToken") or ticket.get("_id") or ticket.get("id")
    return str(value) if value else None
