"""Render a hydrated form graph as a paginated PDF document.

The layout is drawn on a ReportLab canvas with a running vertical cursor:
each section asks for the space it needs and a new page is started when the
remaining height falls below that threshold. Image receipts are drawn inline,
PDF receipts are appended after the form pages, anything else is listed by name.
"""

import io

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.lib.colors import Color, HexColor
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from reimburse.core.dates import format_display_date
from reimburse.core.errors import ActionError, ErrorCode
from reimburse.core.models import FormGraph, PdfResult, ReceiptRead, TransactionRead
from reimburse.core.settings import Settings, get_settings
from reimburse.core.utils import decode_base64_content, get_logger
from reimburse.services.form_service import action_boundary, get_form_by_id

logger = get_logger("reimburse.pdf")

W, H = LETTER
MARGIN = 50
FOOTER_HEIGHT = 30
CONTENT_W = W - 2 * MARGIN

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
TEXT_COLOR = HexColor("#1F2937")
MUTED = HexColor("#6B7280")
RULE = HexColor("#CCCCCC")
HEADER_FILL = HexColor("#EEEEEE")

IMAGE_MAX_WIDTH = 400
IMAGE_MAX_HEIGHT = 450
TRANSACTION_MIN_SPACE = 150
RECEIPT_LINE_SPACE = 30
TABLE_COLUMNS = (("Date", 95), ("Account Line", 100), ("Department", 85), ("Place/Vendor", 145), ("Amount", 87))
IMAGE_TYPES = ("image/png", "image/jpeg", "image/jpg")


def money(amount: float) -> str:
    """Format a currency amount."""
    return f"${amount:,.2f}"


class FormPdfRenderer:
    """Draws one form graph onto a canvas and collects PDF receipts to append."""

    def __init__(self, graph: FormGraph) -> None:
        """Prepare a fresh canvas for the graph."""
        self.graph = graph
        self.buffer = io.BytesIO()
        self.c = canvas.Canvas(self.buffer, pagesize=LETTER)
        self.c.setTitle(f"{graph.form.form_type} Form #{graph.form.id}")
        self.c.setAuthor(graph.form.submitter_name)
        self.page_num = 1
        self.y = H - MARGIN
        self.attachments: list[tuple[str, PdfReader]] = []

    # --- primitives ---

    def new_page(self) -> None:
        """Finish the current page and move the cursor to the top of the next one."""
        self.draw_footer()
        self.c.showPage()
        self.page_num += 1
        self.y = H - MARGIN

    def ensure_space(self, needed: float) -> None:
        """Start a new page when less than ``needed`` points remain above the footer."""
        if self.y - needed < MARGIN + FOOTER_HEIGHT:
            self.new_page()

    def draw_footer(self) -> None:
        self.draw_text(f"Page {self.page_num}", W / 2, MARGIN / 2, size=8, color=MUTED, align="center")

    def draw_text(
        self,
        text: str,
        x: float,
        y: float,
        font: str = FONT,
        size: float = 10,
        color: Color = TEXT_COLOR,
        align: str = "left",
        max_width: float | None = None,
    ) -> None:
        self.c.saveState()
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        if max_width:
            while self.c.stringWidth(text, font, size) > max_width and len(text) > 3:
                text = text[:-4] + "..."
        if align == "center":
            self.c.drawCentredString(x, y, text)
        elif align == "right":
            self.c.drawRightString(x, y, text)
        else:
            self.c.drawString(x, y, text)
        self.c.restoreState()

    def draw_wrapped_text(self, text: str, x: float, max_width: float, size: float = 10, leading: float = 14) -> None:
        """Draw word-wrapped text at the cursor, breaking pages between lines."""
        lines: list[str] = []
        for paragraph in (text or "").splitlines() or [""]:
            current = ""
            for word in paragraph.split():
                candidate = f"{current} {word}" if current else word
                if self.c.stringWidth(candidate, FONT, size) <= max_width:
                    current = candidate
                else:
                    if current:
                        lines.append(current)
                    current = word
            lines.append(current)
        for line in lines:
            self.ensure_space(leading)
            self.draw_text(line, x, self.y, size=size)
            self.y -= leading

    def draw_rule(self, color: Color = RULE) -> None:
        self.c.saveState()
        self.c.setStrokeColor(color)
        self.c.setLineWidth(1)
        self.c.line(MARGIN, self.y, W - MARGIN, self.y)
        self.c.restoreState()

    def draw_subheader(self, title: str) -> None:
        self.y -= 8
        self.draw_text(title, MARGIN, self.y, FONT_BOLD, 14)
        self.y -= 20

    def draw_label_value(self, label: str, value: str, x: float, y: float, width: float) -> None:
        label_text = f"{label}: "
        self.draw_text(label_text, x, y, FONT_BOLD, 10)
        offset = self.c.stringWidth(label_text, FONT_BOLD, 10)
        self.draw_text(value, x + offset, y, max_width=width - offset)

    # --- sections ---

    def draw_header(self) -> None:
        form = self.graph.form
        self.draw_text(f"{form.form_type} Form", W / 2, self.y, FONT_BOLD, 22, align="center")
        self.y -= 24
        meta = (
            f"Form ID: {form.id}    Created: {format_display_date(form.created_at)}"
            f"    Updated: {format_display_date(form.updated_at)}"
        )
        self.draw_text(meta, W / 2, self.y, size=9, color=MUTED, align="center")
        self.y -= 18
        self.draw_rule()
        self.y -= 10

    def draw_summary(self) -> None:
        """Submitter details on the left, reimbursement details on the right."""
        form = self.graph.form
        column_w = CONTENT_W / 2
        left, right = MARGIN, MARGIN + column_w
        self.ensure_space(90)
        self.y -= 8
        self.draw_text("Submitter", left, self.y, FONT_BOLD, 14)
        self.draw_text("Reimbursement Information", right, self.y, FONT_BOLD, 14)
        self.y -= 20
        rows = (
            (("Submitted By", form.submitter_name), ("Reimbursed To", form.reimbursed_name)),
            (("Submitter Email", form.submitter_email), ("Reimbursed Email", form.reimbursed_email)),
            (("Total Amount", money(self.graph.total)), ("Transactions", str(len(self.graph.transactions)))),
        )
        for (l_label, l_value), (r_label, r_value) in rows:
            self.draw_label_value(l_label, l_value, left, self.y, column_w - 10)
            self.draw_label_value(r_label, r_value, right, self.y, column_w - 10)
            self.y -= 15
        self.y -= 10

    def draw_table(self, transaction: TransactionRead) -> None:
        row_h = 18
        self.c.saveState()
        self.c.setFillColor(HEADER_FILL)
        self.c.rect(MARGIN, self.y - row_h, CONTENT_W, row_h, fill=1, stroke=0)
        self.c.restoreState()
        values = (
            format_display_date(transaction.date),
            transaction.account_line,
            transaction.department,
            transaction.place_vendor,
            money(transaction.amount),
        )
        x = MARGIN + 6
        for title, width in TABLE_COLUMNS:
            self.draw_text(title, x, self.y - 13, FONT_BOLD, 9)
            x += width
        self.y -= row_h
        x = MARGIN + 6
        for value, (_, width) in zip(values, TABLE_COLUMNS, strict=True):
            self.draw_text(value, x, self.y - 13, size=9, max_width=width - 10)
            x += width
        self.y -= row_h
        self.draw_rule()
        self.y -= 14

    def draw_transaction(self, index: int, transaction: TransactionRead) -> None:
        self.ensure_space(TRANSACTION_MIN_SPACE)
        self.draw_text(f"Transaction #{index}", MARGIN, self.y, FONT_BOLD, 13)
        self.y -= 10
        self.draw_table(transaction)
        self.draw_text("Description:", MARGIN, self.y, FONT_BOLD, 10)
        self.y -= 14
        self.draw_wrapped_text(transaction.description or "", MARGIN, CONTENT_W)
        self.y -= 2
        self.ensure_space(RECEIPT_LINE_SPACE)
        total = f"Transaction total: {money(transaction.amount)}"
        self.draw_text(total, W - MARGIN, self.y, FONT_BOLD, 10, align="right")
        self.y -= 20
        if transaction.receipts:
            self.ensure_space(RECEIPT_LINE_SPACE)
            self.draw_text(f"Receipts for Transaction #{index}:", MARGIN, self.y, FONT_BOLD, 10)
            self.y -= 16
            for receipt in transaction.receipts:
                self.draw_receipt(receipt)

    def draw_receipt_line(self, text: str) -> None:
        self.ensure_space(RECEIPT_LINE_SPACE)
        self.draw_text(text, MARGIN + 10, self.y, size=10, max_width=CONTENT_W - 10)
        self.y -= 16

    def draw_receipt(self, receipt: ReceiptRead) -> None:
        """Draw an image receipt inline, queue a PDF receipt, or list anything else by name."""
        name = receipt.name or f"Receipt {receipt.id}"
        if not receipt.base64_content:
            logger.warning(f"Receipt {receipt.id} has no content, skipping render")
            self.draw_receipt_line(f"{name} (Content not available)")
            return
        file_type = (receipt.file_type or "").lower()
        if file_type in IMAGE_TYPES:
            self.draw_image_receipt(name, receipt)
        elif file_type == "application/pdf":
            try:
                reader = PdfReader(io.BytesIO(decode_base64_content(receipt.base64_content)))
                page_count = len(reader.pages)
            except (ValueError, PyPdfError):
                logger.exception(f"Error reading PDF receipt {receipt.id}")
                self.draw_receipt_line(f"{name} (Error processing PDF)")
                return
            self.attachments.append((name, reader))
            self.draw_receipt_line(f"Receipt (application/pdf): {name} - {page_count} page(s) appended")
        else:
            self.draw_receipt_line(f"Receipt ({receipt.file_type or 'Unknown type'}): {name}")

    def draw_image_receipt(self, name: str, receipt: ReceiptRead) -> None:
        try:
            image = ImageReader(io.BytesIO(decode_base64_content(receipt.base64_content)))
            image_w, image_h = image.getSize()
        except Exception:
            logger.exception(f"Error processing image receipt {receipt.id}")
            self.draw_receipt_line(f"{name} (Error processing image)")
            return
        width = min(IMAGE_MAX_WIDTH, image_w)
        height = image_h * width / image_w
        if height > IMAGE_MAX_HEIGHT:
            width, height = width * IMAGE_MAX_HEIGHT / height, IMAGE_MAX_HEIGHT
        self.ensure_space(height + RECEIPT_LINE_SPACE)
        self.draw_text(name, MARGIN + 10, self.y, size=10)
        self.y -= 8
        self.c.drawImage(image, MARGIN + 10, self.y - height, width, height)
        self.y -= height + 20

    def render(self) -> bytes:
        """Draw every section and return the finished document."""
        self.draw_header()
        self.draw_summary()
        self.draw_subheader("Transactions")
        if not self.graph.transactions:
            self.draw_text("No transactions.", MARGIN, self.y, color=MUTED)
            self.y -= 16
        for index, transaction in enumerate(self.graph.transactions, start=1):
            if index > 1:
                self.ensure_space(TRANSACTION_MIN_SPACE)
                self.draw_rule()
                self.y -= 16
            self.draw_transaction(index, transaction)
        self.draw_footer()
        self.c.save()
        return self.append_attachments(self.buffer.getvalue())

    def append_attachments(self, document: bytes) -> bytes:
        """Append the pages of every PDF receipt after the form pages."""
        if not self.attachments:
            return document
        writer = PdfWriter()
        writer.append(io.BytesIO(document))
        for name, reader in self.attachments:
            writer.append(reader)
            logger.info(f"Appended {len(reader.pages)} page(s) from receipt {name}")
        out = io.BytesIO()
        writer.write(out)
        return out.getvalue()


def generate_form_pdf(graph: FormGraph) -> bytes:
    """Render a form graph into PDF bytes."""
    logger.info(f"Generating PDF for form {graph.form.id} with {len(graph.transactions)} transaction(s)")
    data = FormPdfRenderer(graph).render()
    logger.info(f"PDF generated for form {graph.form.id}, {len(data)} bytes")
    return data


@action_boundary(PdfResult, "Error generating PDF")
def generate_form_pdf_action(session: Session, form_id: int, *, settings: Settings | None = None) -> PdfResult:
    """Load a form with its receipts and render it, reporting failures as an envelope."""
    graph = get_form_by_id(session, form_id, settings=settings or get_settings())
    if graph is None:
        raise ActionError(ErrorCode.NOT_FOUND, f"Form with ID {form_id} not found.")
    try:
        data = generate_form_pdf(graph)
    except Exception as exc:
        logger.exception(f"Error generating PDF for form {form_id}")
        raise ActionError(ErrorCode.INTERNAL, f"Error generating PDF: {exc}") from exc
    return PdfResult(success=True, data=data)
