import csv
import io
from datetime import date, datetime
from flask import Response

GIFT_CARD_HEADERS = ["Title", "Price", "Status", "Expiry Date", "Created At"]
ORDER_HEADERS = ["Order ID", "Customer Name", "Email", "Gift Card", "Amount", "Status", "Date"]
REDEMPTION_HEADERS = ["Date", "Time", "Transaction ID", "QR Code", "Customer", "Amount",
                      "Balance Before", "Balance After", "Location", "Redeemed By"]
REDEMPTION_HISTORY_HEADERS = ["Date", "Time", "Amount", "Balance Before", "Balance After",
                              "Location", "Address", "Notes", "Redeemed By", "Status"]


def dated_filename(prefix, today=None):
    """'gift-cards-2026-01-19.csv' 형식 파일명"""
    today = today or date.today()
    return f"{prefix}-{today.isoformat()}.csv"


def _day(value):
    return value.strftime("%Y-%m-%d") if value else ""


def _time(value):
    return value.strftime("%H:%M") if value else ""


def build_csv(headers, rows):
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def csv_response(content, filename):
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def gift_card_rows(cards):
    for card in cards:
        yield [
            card.title,
            f"{card.price:.2f}",
            "Active" if card.is_active else "Inactive",
            _day(card.expiry_date),
            _day(card.created_at),
        ]


def order_rows(purchases):
    for purchase in purchases:
        yield [
            purchase.id,
            purchase.customer_name,
            purchase.customer_email,
            purchase.gift_card.title if purchase.gift_card else "",
            f"{purchase.purchase_amount:.2f}",
            purchase.status,
            _day(purchase.purchased_at),
        ]


def redemption_rows(redemptions):
    for item in redemptions:
        purchase = item.purchase
        yield [
            _day(item.redeemed_at),
            _time(item.redeemed_at),
            item.transaction_id,
            purchase.qr_code if purchase else "",
            purchase.customer_name if purchase else "",
            f"{item.amount:.2f}",
            f"{item.balance_before:.2f}",
            f"{item.balance_after:.2f}",
            item.location_name or "N/A",
            item.redeemed_by.name if item.redeemed_by else "Unknown",
        ]


def redemption_history_rows(redemptions):
    for item in redemptions:
        yield [
            _day(item.redeemed_at),
            _time(item.redeemed_at),
            f"{item.amount:.2f}",
            f"{item.balance_before:.2f}",
            f"{item.balance_after:.2f}",
            item.location_name or "N/A",
            item.location_address or "N/A",
            item.notes or "",
            item.redeemed_by.name if item.redeemed_by else "Unknown",
            item.status,
        ]


def export_gift_cards(cards):
    return csv_response(build_csv(GIFT_CARD_HEADERS, gift_card_rows(cards)), dated_filename("gift-cards"))


def export_orders(purchases):
    return csv_response(build_csv(ORDER_HEADERS, order_rows(purchases)), dated_filename("orders"))


def export_redemptions(redemptions):
    return csv_response(build_csv(REDEMPTION_HEADERS, redemption_rows(redemptions)),
                        dated_filename("redemptions"))


def export_redemption_history(qr_code, redemptions):
    return csv_response(build_csv(REDEMPTION_HISTORY_HEADERS, redemption_history_rows(redemptions)),
                        dated_filename(f"redemption-history-{qr_code}"))


def parse_date_param(value, end_of_day=False):
    """쿼리스트링 날짜(YYYY-MM-DD) -> datetime. 형식 오류면 None"""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value[:10], "%Y-%m-%d")
    except ValueError:
        return None
    if end_of_day:
        parsed = parsed.replace(hour=23, minute=59, second=59)
    return parsed
