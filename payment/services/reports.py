import csv
import io
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from django.db.models import Avg, Count, Q, QuerySet, Sum
from django.db.models.functions import TruncDate, TruncMonth
from django.utils import timezone
from django.utils.dateparse import parse_date

from payment.exceptions import PaymentValidationError
from payment.models import Commission, ItemType, Purchase, SellerType

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

SUMMARY_PERIODS = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}

CSV_HEADER = [
    "ID",
    "Date",
    "Seller",
    "Buyer",
    "Item Type",
    "Item",
    "Total Amount",
    "Seller Amount",
    "Platform Amount",
    "Status",
    "Payout Status",
    "Commission Percentage",
]


def _money(value) -> str:
    return str(value if value is not None else ZERO)


def _parse_day(value: Optional[str], field: str) -> Optional[date]:
    if not value:
        return None
    parsed = parse_date(str(value))
    if parsed is None:
        raise PaymentValidationError(f"{field} must be a date in YYYY-MM-DD format")
    return parsed


def _item_rows(queryset: QuerySet, limit: int) -> List[Dict[str, Any]]:
    rows = (
        queryset.values("item_type", "book_id", "book__title", "judgment_id", "judgment__title")
        .annotate(sales=Count("id"), revenue=Sum("total_amount"), seller_earnings=Sum("seller_amount"))
        .order_by("-sales", "-revenue")[:limit]
    )
    items = []
    for row in rows:
        is_book = row["item_type"] == ItemType.BOOK
        item_id = row["book_id"] if is_book else row["judgment_id"]
        items.append(
            {
                "item_type": row["item_type"],
                "item_id": str(item_id) if item_id else None,
                "title": row["book__title"] if is_book else row["judgment__title"],
                "sales": row["sales"],
                "revenue": _money(row["revenue"]),
                "seller_earnings": _money(row["seller_earnings"]),
            }
        )
    return items


def _seller_rows(queryset: QuerySet, limit: int) -> List[Dict[str, Any]]:
    rows = (
        queryset.values("seller_id", "seller__email")
        .annotate(sales=Count("id"), earnings=Sum("seller_amount"), average_sale=Avg("seller_amount"))
        .order_by("-earnings")[:limit]
    )
    return [
        {
            "seller_id": str(row["seller_id"]),
            "seller_email": row["seller__email"],
            "sales": row["sales"],
            "earnings": _money(row["earnings"]),
            "average_sale": _money(Decimal(row["average_sale"] or 0).quantize(Decimal("0.01"))),
        }
        for row in rows
    ]


class CommissionReports:
    """Read-only views over the commission ledger for sellers and the platform."""

    @staticmethod
    def base_queryset() -> QuerySet:
        return Commission.objects.select_related("seller", "buyer", "book", "judgment", "payout")

    @staticmethod
    def apply_filters(queryset: QuerySet, params: Mapping[str, Any]) -> QuerySet:
        commission_status = (params.get("status") or "").upper()
        if commission_status:
            if commission_status not in Commission.Status.values:
                raise PaymentValidationError(f"Unknown commission status: {commission_status}")
            queryset = queryset.filter(status=commission_status)

        seller_type = (params.get("seller_type") or "").lower()
        if seller_type:
            if seller_type not in SellerType.values:
                raise PaymentValidationError(f"Unknown seller type: {seller_type}")
            queryset = queryset.filter(seller_type=seller_type)

        if params.get("seller_id"):
            queryset = queryset.filter(seller_id=params["seller_id"])

        start = _parse_day(params.get("start_date"), "start_date")
        end = _parse_day(params.get("end_date"), "end_date")
        if start and end and start > end:
            raise PaymentValidationError("start_date must not be after end_date")
        if start:
            queryset = queryset.filter(created_at__date__gte=start)
        if end:
            queryset = queryset.filter(created_at__date__lte=end)
        return queryset

    @staticmethod
    def totals(queryset: QuerySet) -> Dict[str, Any]:
        data = queryset.aggregate(
            count=Count("id"),
            total_amount=Sum("total_amount"),
            seller_amount=Sum("seller_amount"),
            platform_amount=Sum("platform_amount"),
            unpaid_amount=Sum("seller_amount", filter=Q(status=Commission.Status.PROCESSED)),
            paid_amount=Sum("seller_amount", filter=Q(status=Commission.Status.PAID_OUT)),
            unpaid_count=Count("id", filter=Q(status=Commission.Status.PROCESSED)),
            paid_count=Count("id", filter=Q(status=Commission.Status.PAID_OUT)),
        )
        return {
            "total_commissions": data["count"],
            "total_amount": _money(data["total_amount"]),
            "total_seller_amount": _money(data["seller_amount"]),
            "total_platform_amount": _money(data["platform_amount"]),
            "unpaid_count": data["unpaid_count"],
            "unpaid_amount": _money(data["unpaid_amount"]),
            "paid_count": data["paid_count"],
            "paid_amount": _money(data["paid_amount"]),
        }

    def summary(self, user, period: str = "month", now=None) -> Dict[str, Any]:
        """Dashboard numbers for one seller, or for everyone when called by the platform account."""
        period = period if period in SUMMARY_PERIODS else "month"
        end = now or timezone.now()
        start = end - SUMMARY_PERIODS[period]

        queryset = Commission.objects.filter(created_at__gte=start, created_at__lte=end)
        if not user.is_platform_admin:
            queryset = queryset.filter(seller=user)

        trend = (
            queryset.annotate(day=TruncDate("created_at"))
            .values("day")
            .annotate(count=Count("id"), seller_amount=Sum("seller_amount"), platform_amount=Sum("platform_amount"))
            .order_by("day")
        )
        return {
            "period": period,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "summary": self.totals(queryset),
            "daily_trend": [
                {
                    "date": row["day"].isoformat(),
                    "count": row["count"],
                    "seller_amount": _money(row["seller_amount"]),
                    "platform_amount": _money(row["platform_amount"]),
                }
                for row in trend
            ],
            "top_items": _item_rows(queryset, limit=5),
        }

    def item_commissions(self, user, item_type: str, item_id) -> QuerySet:
        item_type = (item_type or "").lower()
        if item_type not in ItemType.values:
            raise PaymentValidationError(f"Unknown item type: {item_type}")
        lookup = {"book_id": item_id} if item_type == ItemType.BOOK else {"judgment_id": item_id}

        queryset = self.base_queryset().filter(item_type=item_type, **lookup)
        if not user.is_platform_admin:
            queryset = queryset.filter(seller=user)
        return queryset.order_by("-created_at")

    def item_report(self, user, item_type: str, item_id) -> Dict[str, Any]:
        queryset = self.item_commissions(user, item_type, item_id)

        earnings = (
            queryset.values("seller_id")
            .annotate(sales=Count("id"), earnings=Sum("seller_amount"), platform_amount=Sum("platform_amount"))
            .order_by("-earnings")
        )
        return {
            "item_type": (item_type or "").lower(),
            "item_id": str(item_id),
            "earnings": [
                {
                    "seller_id": str(row["seller_id"]),
                    "sales": row["sales"],
                    "earnings": _money(row["earnings"]),
                    "platform_amount": _money(row["platform_amount"]),
                }
                for row in earnings
            ],
        }

    def stats(self, params: Optional[Mapping[str, Any]] = None, now=None) -> Dict[str, Any]:
        queryset = self.apply_filters(Commission.objects.all(), params or {})
        overall = self.totals(queryset)
        average = queryset.aggregate(value=Avg("percentage"))["value"]
        overall["average_percentage"] = _money(Decimal(average).quantize(Decimal("0.01")) if average is not None else None)

        by_status = {
            row["status"]: {"count": row["count"], "seller_amount": _money(row["seller_amount"])}
            for row in queryset.values("status").annotate(count=Count("id"), seller_amount=Sum("seller_amount"))
        }
        for commission_status in Commission.Status.values:
            by_status.setdefault(commission_status, {"count": 0, "seller_amount": _money(None)})

        by_seller_type = {
            row["seller_type"]: {
                "count": row["count"],
                "seller_amount": _money(row["seller_amount"]),
                "platform_amount": _money(row["platform_amount"]),
            }
            for row in queryset.values("seller_type").annotate(
                count=Count("id"), seller_amount=Sum("seller_amount"), platform_amount=Sum("platform_amount")
            )
        }

        since = (now or timezone.now()) - timedelta(days=183)
        monthly = (
            queryset.filter(created_at__gte=since)
            .annotate(month=TruncMonth("created_at"))
            .values("month")
            .annotate(count=Count("id"), seller_amount=Sum("seller_amount"), platform_amount=Sum("platform_amount"))
            .order_by("month")
        )
        return {
            "overall": overall,
            "by_status": by_status,
            "by_seller_type": by_seller_type,
            "monthly_trend": [
                {
                    "month": row["month"].strftime("%Y-%m"),
                    "count": row["count"],
                    "seller_amount": _money(row["seller_amount"]),
                    "platform_amount": _money(row["platform_amount"]),
                }
                for row in monthly
            ],
            "top_sellers": _seller_rows(queryset, limit=10),
            "top_items": _item_rows(queryset, limit=10),
        }

    def daily_commissions(self, day: Optional[str] = None) -> QuerySet:
        target = _parse_day(day, "date") or timezone.localdate()
        return self.base_queryset().filter(created_at__date=target).order_by("-created_at")

    def daily_report(self, day: Optional[str] = None) -> Dict[str, Any]:
        target = _parse_day(day, "date") or timezone.localdate()
        queryset = self.daily_commissions(target.isoformat())
        return {
            "date": target.isoformat(),
            "summary": self.totals(queryset),
            "top_sellers": _seller_rows(queryset, limit=10),
        }

    def export_csv(self, params: Optional[Mapping[str, Any]] = None) -> str:
        queryset = self.apply_filters(self.base_queryset(), params or {}).order_by("-created_at")
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_HEADER)
        rows = 0
        for commission in queryset.iterator():
            item = commission.book if commission.item_type == ItemType.BOOK else commission.judgment
            writer.writerow(
                [
                    commission.id,
                    commission.created_at.isoformat(),
                    commission.seller.email,
                    commission.buyer.email,
                    commission.item_type,
                    item.title if item else "",
                    commission.total_amount,
                    commission.seller_amount,
                    commission.platform_amount,
                    commission.status,
                    commission.payout.status if commission.payout else "N/A",
                    f"{commission.percentage}%",
                ]
            )
            rows += 1
        logger.info("Exported %d commissions to CSV", rows)
        return buffer.getvalue()


class PurchaseReports:
    @staticmethod
    def completed() -> QuerySet:
        return Purchase.objects.filter(payment_status=Purchase.PaymentStatus.COMPLETED)

    def sales(self, seller) -> QuerySet:
        return self.completed().select_related("user", "book", "judgment").filter(seller=seller).order_by("-created_at")

    def seller_totals(self, seller) -> Dict[str, Any]:
        totals = self.completed().filter(seller=seller).aggregate(count=Count("id"), earnings=Sum("seller_amount"))
        return {"total_sales": totals["count"], "total_earnings": _money(totals["earnings"])}

    def buyer_stats(self, user) -> Dict[str, Any]:
        data = self.completed().filter(user=user).aggregate(
            count=Count("id"),
            spent=Sum("amount"),
            books=Count("id", filter=Q(item_type=ItemType.BOOK)),
            judgments=Count("id", filter=Q(item_type=ItemType.JUDGMENT)),
        )
        return {
            "total_purchases": data["count"],
            "total_spent": _money(data["spent"]),
            "total_books": data["books"],
            "total_judgments": data["judgments"],
        }

    def check(self, user, item_type: str, item_id, format: Optional[str] = None) -> Optional[Purchase]:
        item_type = (item_type or "").lower()
        if item_type not in ItemType.values or not item_id:
            raise PaymentValidationError("item_type and item_id are required")
        lookup = {"book_id": item_id} if item_type == ItemType.BOOK else {"judgment_id": item_id}
        queryset = self.completed().select_related("book", "judgment").filter(user=user, item_type=item_type, **lookup)
        if format:
            queryset = queryset.filter(format=format)
        return queryset.order_by("-created_at").first()

    def platform_stats(self, now=None) -> Dict[str, Any]:
        now = now or timezone.now()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        counts = Purchase.objects.aggregate(
            total=Count("id"),
            completed=Count("id", filter=Q(payment_status=Purchase.PaymentStatus.COMPLETED)),
            pending=Count("id", filter=Q(payment_status=Purchase.PaymentStatus.PENDING)),
        )
        completed = self.completed()
        money = completed.aggregate(
            revenue=Sum("amount"),
            monthly_revenue=Sum("amount", filter=Q(created_at__gte=month_start)),
            seller_amount=Sum("seller_amount"),
            platform_amount=Sum("platform_amount"),
            books=Count("id", filter=Q(item_type=ItemType.BOOK)),
            judgments=Count("id", filter=Q(item_type=ItemType.JUDGMENT)),
        )
        top_books = (
            completed.filter(item_type=ItemType.BOOK)
            .values("book_id", "book__title")
            .annotate(sales=Count("id"), revenue=Sum("amount"))
            .order_by("-sales", "-revenue")[:10]
        )
        return {
            "total_purchases": counts["total"],
            "completed_purchases": counts["completed"],
            "pending_purchases": counts["pending"],
            "total_revenue": _money(money["revenue"]),
            "monthly_revenue": _money(money["monthly_revenue"]),
            "book_purchases": money["books"],
            "judgment_purchases": money["judgments"],
            "commission": {
                "total_seller_amount": _money(money["seller_amount"]),
                "total_platform_amount": _money(money["platform_amount"]),
            },
            "top_books": [
                {
                    "book_id": str(row["book_id"]),
                    "title": row["book__title"],
                    "sales": row["sales"],
                    "revenue": _money(row["revenue"]),
                }
                for row in top_books
            ],
        }
