"""
PDF Service

Renders invoices to PDF bytes with reportlab.
"""
import io
from datetime import datetime
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle


def _money(value, currency: str) -> str:
    return f"{currency} {Decimal(value or 0):,.2f}"


def create_invoice_pdf(invoice, business_name: str = "") -> bytes:
    """
    Render one invoice.

    Args:
        invoice: Invoice model (or any object with the same attributes)
        business_name: Issuer shown in the header

    Returns:
        PDF bytes
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        rightMargin=50,
        leftMargin=50,
        topMargin=50,
        bottomMargin=50,
        title=f"Invoice {invoice.invoice_number}",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "InvoiceTitle",
        parent=styles["Heading1"],
        fontSize=22,
        spaceAfter=6,
        textColor=colors.HexColor("#1e293b"),
    )
    muted_style = ParagraphStyle(
        "Muted",
        parent=styles["Normal"],
        fontSize=10,
        textColor=colors.HexColor("#64748b"),
    )
    heading_style = ParagraphStyle(
        "SectionHeading",
        parent=styles["Heading2"],
        fontSize=13,
        spaceBefore=14,
        spaceAfter=6,
        textColor=colors.HexColor("#334155"),
    )
    normal_style = styles["Normal"]

    elements = []

    elements.append(Paragraph(f"Invoice {escape(invoice.invoice_number)}", title_style))
    if business_name:
        elements.append(Paragraph(escape(business_name), muted_style))
    issued = (invoice.created_at or datetime.utcnow()).strftime("%B %d, %Y")
    due = invoice.due_date.strftime("%B %d, %Y") if invoice.due_date else "On receipt"
    elements.append(Paragraph(f"Issued: {issued} | Due: {due} | Status: {escape(invoice.status)}", muted_style))
    elements.append(Spacer(1, 12))

    # Bill to
    elements.append(Paragraph("Bill To", heading_style))
    for line in (
        invoice.customer_name,
        invoice.customer_email,
        invoice.customer_phone,
        invoice.customer_address,
    ):
        if line:
            elements.append(Paragraph(escape(str(line)), normal_style))

    # Line item
    elements.append(Paragraph("Details", heading_style))
    item_table = Table(
        [
            ["Description", "Quantity", "Unit Price", "Total"],
            [
                Paragraph(escape(invoice.item_description), normal_style),
                f"{Decimal(invoice.quantity or 0):g}",
                _money(invoice.unit_price, invoice.currency),
                _money(invoice.total, invoice.currency),
            ],
        ],
        colWidths=[3.2 * inch, 1 * inch, 1.4 * inch, 1.4 * inch],
    )
    item_table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f1f5f9")),
                ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("BOX", (0, 0), (-1, -1), 1, colors.HexColor("#e2e8f0")),
                ("INNERGRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e2e8f0")),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ]
        )
    )
    elements.append(item_table)
    elements.append(Spacer(1, 10))
    elements.append(Paragraph(f"<b>Amount due: {_money(invoice.total, invoice.currency)}</b>", normal_style))

    if invoice.notes:
        elements.append(Paragraph("Notes", heading_style))
        elements.append(Paragraph(escape(invoice.notes), normal_style))

    doc.build(elements)
    return buffer.getvalue()
