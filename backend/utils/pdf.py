# backend/utils/pdf.py
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional

from config import settings
# Model imported for type hints only
from models.product import Product

logger = logging.getLogger(__name__)

FONT_DIR = Path(settings.LABEL_FONT_DIR)
FONT_REGULAR_PATH = FONT_DIR / "DejaVuSans.ttf"
FONT_BOLD_PATH = FONT_DIR / "DejaVuSans-Bold.ttf"

FONT_REGULAR_NAME = "Helvetica"
FONT_BOLD_NAME = "Helvetica-Bold"

# Label stock size (width x height)
LABEL_WIDTH_MM = 70
LABEL_HEIGHT_MM = 40

_fonts_inited = False
def _init_fonts():
    """Registers DejaVu fonts (full Unicode) when available, keeps Helvetica otherwise."""
    global _fonts_inited, FONT_REGULAR_NAME, FONT_BOLD_NAME
    if _fonts_inited:
        return
    _fonts_inited = True

    from reportlab.pdfbase import pdfmetrics
    from reportlab.pdfbase.ttfonts import TTFont

    if not FONT_REGULAR_PATH.exists():
        logger.info("Label font not found at %s, using Helvetica", FONT_REGULAR_PATH)
        return

    pdfmetrics.registerFont(TTFont("DejaVuSans", str(FONT_REGULAR_PATH)))
    FONT_REGULAR_NAME = "DejaVuSans"
    if FONT_BOLD_PATH.exists():
        pdfmetrics.registerFont(TTFont("DejaVuSans-Bold", str(FONT_BOLD_PATH)))
        FONT_BOLD_NAME = "DejaVuSans-Bold"
    else:
        FONT_BOLD_NAME = FONT_REGULAR_NAME

def format_price(amount: Optional[float], currency: Optional[str]) -> Optional[str]:
    if not amount:
        return None
    return f"{amount:,.2f} {currency or ''}".strip()

def _fit(text: str, font: str, size: float, max_width: float) -> str:
    from reportlab.pdfbase.pdfmetrics import stringWidth

    if stringWidth(text, font, size) <= max_width:
        return text
    while text and stringWidth(text + "...", font, size) > max_width:
        text = text[:-1]
    return text + "..."

def generate_product_label_pdf(product: Product, copies: int = 1) -> bytes:
    """
    Builds a print-ready product label, one label per page:
    - product name (top, truncated to the label width)
    - Code128 barcode of the stock code
    - "Stock code: ..." line
    - sale price, when set
    """
    from reportlab.pdfgen import canvas
    from reportlab.lib.units import mm
    from reportlab.graphics.barcode import code128

    _init_fonts()

    width, height = LABEL_WIDTH_MM * mm, LABEL_HEIGHT_MM * mm
    margin = 3 * mm
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=(width, height))
    c.setTitle(f"Label {product.stock_code}")

    price = format_price(product.sale_price, product.currency)

    for _ in range(max(1, copies)):
        y = height - margin - 3 * mm

        c.setFont(FONT_BOLD_NAME, 9)
        c.drawCentredString(width / 2, y, _fit(product.name or "", FONT_BOLD_NAME, 9, width - 2 * margin))
        y -= 2 * mm

        barcode = code128.Code128(product.stock_code, barHeight=13 * mm, barWidth=0.3 * mm, quiet=False)
        # Shrink wide codes so they stay on the label
        if barcode.width > width - 2 * margin:
            barcode = code128.Code128(
                product.stock_code,
                barHeight=13 * mm,
                barWidth=0.3 * mm * (width - 2 * margin) / barcode.width,
                quiet=False,
            )
        y -= 13 * mm
        barcode.drawOn(c, (width - barcode.width) / 2, y)
        y -= 4 * mm

        c.setFont(FONT_REGULAR_NAME, 8)
        c.drawCentredString(width / 2, y, f"Stock code: {product.stock_code}")

        if price:
            y -= 5 * mm
            c.setFont(FONT_BOLD_NAME, 10)
            c.drawCentredString(width / 2, y, price)

        c.showPage()

    c.save()
    return buffer.getvalue()
