import io
from urllib.parse import urlencode

import qrcode


class QRService:
    @staticmethod
    def build_scan_url(origin: str, ticket_id: str, requester_address: str) -> str:
        """
        Builds the phone page URL encoded into the QR code
        Structure: <origin>/phone?uuid=<ticket_id>&ip=<requester_address>
        """
        query = urlencode({"uuid": ticket_id, "ip": requester_address})
        return f"{origin.rstrip('/')}/phone?{query}"

    @staticmethod
    def create_qr_png(data_str: str) -> bytes:
        """
        Creates a QR code image and returns the raw PNG bytes
        """
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=8,
            border=4,
        )
        qr.add_data(data_str)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        return buffered.getvalue()
