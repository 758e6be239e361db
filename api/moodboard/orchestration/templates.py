"""Built-in dashboard templates matched against natural-language requests."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SemanticTemplate:
    name: str
    description: str
    keywords: list[str]
    required_data_sources: list[str]
    visualizations: list[dict]
    title: str
    layout: str = "dashboard"
    theme: str = "modern"
    optional_data_sources: list[str] = field(default_factory=list)

    def match_score(self, query: str) -> int:
        """Name match 10, description match 5, each keyword match 3."""
        query = query.lower()
        score = 0
        if query in self.name.lower():
            score += 10
        if query in self.description.lower():
            score += 5
        for keyword in self.keywords:
            if keyword in query or query in keyword:
                score += 3
        return score


def _kpi(title: str, metric: str, aggregation: str, **extra) -> dict:
    return {"type": "kpiCard", "title": title, "metric": metric, "aggregation": aggregation, **extra}


class TemplateRegistry:
    """Named templates with keyword search."""

    def __init__(self):
        self._templates: dict[str, SemanticTemplate] = {}

    def register(self, template: SemanticTemplate) -> None:
        self._templates[template.name] = template

    def get(self, name: str) -> Optional[SemanticTemplate]:
        return self._templates.get(name)

    def find(self, query: str) -> list[SemanticTemplate]:
        """Templates with a positive score, best first (ties keep registration order)."""
        scored = [(t.match_score(query), t) for t in self._templates.values()]
        return [t for score, t in sorted(scored, key=lambda pair: pair[0], reverse=True) if score > 0]

    def list_templates(self) -> list[dict]:
        return [{"name": t.name, "description": t.description} for t in self._templates.values()]


SEMANTIC_TEMPLATES = TemplateRegistry()

SEMANTIC_TEMPLATES.register(SemanticTemplate(
    name="google-ads-performance",
    description="Monthly performance metrics for Google Ads campaigns",
    keywords=["google ads", "adwords", "ppc", "advertising", "campaigns"],
    required_data_sources=["googlesheets"],
    title="Google Ads Performance Dashboard",
    visualizations=[
        _kpi("Total Spend", "cost", "sum", format="currency"),
        _kpi("Conversions", "conversions", "sum", showTrend=True),
        _kpi("Avg CTR", "ctr", "avg", format="percentage"),
        _kpi("Avg CPC", "cpc", "avg", format="currency"),
        {"type": "lineChart", "title": "Performance Trends", "xAxis": "month",
         "yAxis": ["impressions", "clicks", "conversions"], "style": {"smooth": True}},
        {"type": "barChart", "title": "Monthly Spend", "xAxis": "month", "yAxis": "cost",
         "style": {"color": "#3B82F6"}},
        {"type": "table", "title": "Detailed Metrics",
         "columns": ["month", "impressions", "clicks", "cost", "conversions", "ctr", "cpc"]},
    ],
))

SEMANTIC_TEMPLATES.register(SemanticTemplate(
    name="ecommerce-sales",
    description="Sales analytics for Shopify stores",
    keywords=["shopify", "sales", "orders", "revenue", "ecommerce", "store"],
    required_data_sources=["shopify"],
    optional_data_sources=["googlesheets", "stripe"],
    title="E-commerce Sales Dashboard",
    visualizations=[
        _kpi("Total Revenue", "total_price", "sum", format="currency"),
        _kpi("Orders", "id", "count"),
        _kpi("Avg Order Value", "total_price", "avg", format="currency"),
        _kpi("Products Sold", "quantity", "sum"),
        {"type": "barChart", "title": "Top Products by Revenue", "xAxis": "product_name",
         "yAxis": "sum_total_price", "style": {"orientation": "horizontal", "limit": 10}},
        {"type": "lineChart", "title": "Daily Sales Trend", "xAxis": "created_at",
         "yAxis": "sum_total_price", "style": {"smooth": True, "area": True}},
        {"type": "pieChart", "title": "Sales by Category", "groupBy": "product_category", "value": "total_price"},
        {"type": "table", "title": "Recent Orders",
         "columns": ["order_number", "customer_email", "total_price", "status", "created_at"],
         "style": {"sortBy": "created_at", "sortOrder": "desc", "limit": 50}},
    ],
))

SEMANTIC_TEMPLATES.register(SemanticTemplate(
    name="marketing-attribution",
    description="Multi-channel marketing attribution and ROI analysis",
    keywords=["attribution", "marketing", "roi", "channels", "conversion"],
    required_data_sources=["googlesheets"],
    optional_data_sources=["shopify", "stripe"],
    title="Marketing Attribution Dashboard",
    layout="analytics",
    visualizations=[
        _kpi("Total Spend", "spend", "sum", format="currency"),
        _kpi("Total Revenue", "revenue", "sum", format="currency"),
        _kpi("Overall ROI", "roi", "avg", format="percentage"),
        _kpi("Conversions", "conversions", "sum"),
        {"type": "barChart", "title": "Revenue by Channel", "xAxis": "channel", "yAxis": "sum_revenue",
         "style": {"color": "#10B981"}},
        {"type": "barChart", "title": "ROI by Channel", "xAxis": "channel", "yAxis": "roi",
         "style": {"color": "#8B5CF6"}},
        {"type": "pieChart", "title": "Spend Distribution", "groupBy": "channel", "value": "spend"},
        {"type": "table", "title": "Channel Performance",
         "columns": ["channel", "spend", "revenue", "conversions", "roi", "cpa"]},
    ],
))

SEMANTIC_TEMPLATES.register(SemanticTemplate(
    name="financial-kpis",
    description="Key financial metrics and performance indicators",
    keywords=["finance", "revenue", "profit", "expenses", "kpi", "metrics"],
    required_data_sources=["googlesheets", "database"],
    title="Financial Performance Dashboard",
    layout="report",
    theme="professional",
    visualizations=[
        _kpi("Revenue", "revenue", "sum", format="currency", showTrend=True),
        _kpi("Gross Margin", "gross_margin", "avg", format="percentage",
             thresholds={"good": 40, "warning": 30, "bad": 20}),
        _kpi("Net Profit", "net_profit", "sum", format="currency", showTrend=True),
        _kpi("Expenses", "total_expenses", "sum", format="currency"),
        {"type": "lineChart", "title": "Revenue vs Forecast", "xAxis": "month",
         "yAxis": ["revenue", "forecast_revenue"],
         "style": {"colors": ["#3B82F6", "#EF4444"], "dashed": [False, True]}},
        {"type": "areaChart", "title": "Profit Margins Over Time", "xAxis": "month",
         "series": ["gross_margin", "net_margin"], "style": {"stacked": False}},
        {"type": "waterfallChart", "title": "Revenue to Profit",
         "categories": ["Revenue", "COGS", "Operating Expenses", "Other", "Net Profit"],
         "style": {"positiveColor": "#10B981", "negativeColor": "#EF4444"}},
        {"type": "table", "title": "Monthly Financial Summary",
         "columns": ["month", "revenue", "expenses", "gross_profit", "net_profit", "margins"]},
    ],
))

SEMANTIC_TEMPLATES.register(SemanticTemplate(
    name="customer-analytics",
    description="Customer behavior, retention, and lifetime value analysis",
    keywords=["customer", "retention", "ltv", "churn", "cohort", "analytics"],
    required_data_sources=["database"],
    optional_data_sources=["shopify", "stripe"],
    title="Customer Analytics Dashboard",
    layout="analytics",
    visualizations=[
        _kpi("Total Customers", "customer_id", "count"),
        _kpi("Avg LTV", "lifetime_value", "avg", format="currency"),
        _kpi("Retention Rate", "retention_rate", "avg", format="percentage"),
        _kpi("Churn Rate", "churn_rate", "avg", format="percentage"),
        {"type": "cohortChart", "title": "Retention Cohorts", "xAxis": "cohort_month",
         "yAxis": "months_since_signup", "value": "retention_percentage"},
        {"type": "histogram", "title": "Customer Value Distribution", "xAxis": "lifetime_value", "bins": 20},
        {"type": "lineChart", "title": "Customer Growth", "xAxis": "month",
         "yAxis": ["new_customers", "churned_customers", "net_growth"]},
        {"type": "table", "title": "Top Customers",
         "columns": ["customer_name", "lifetime_value", "orders", "last_order_date"],
         "style": {"sortBy": "lifetime_value", "sortOrder": "desc", "limit": 100}},
    ],
))
