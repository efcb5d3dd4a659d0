"""
Streamlit UI for the Shipping Rate Engine.

Features:
- Quote calculator with itemized breakdown and resolution trace
- Carrier comparison table for the same shipment
- Read-only view of customer contracts and promotions
"""
import streamlit as st
import pandas as pd
import sys
from decimal import Decimal
from pathlib import Path
from datetime import datetime

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from rate_engine.engine import PricingEngine, PricingError, Shipment
from rate_engine.engine.entities import Dimensions, ServiceLevel
from rate_engine.config.settings import configure_logging, get_settings


st.set_page_config(
    page_title="Shipping Rate Engine",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource
def get_engine():
    """Get cached engine instance."""
    configure_logging(get_settings())
    return PricingEngine()


try:
    engine = get_engine()
except PricingError as e:
    st.error(f"Rate data error: {e.message}")
    st.stop()

snapshot = engine.snapshot

# ============================================================================
# SIDEBAR: Shipment
# ============================================================================
with st.sidebar:
    st.header("Shipment")
    carrier_code = st.selectbox("Carrier", sorted(snapshot.carriers))
    zone_code = st.selectbox("Zone", sorted(snapshot.zones))
    service_type = st.selectbox("Service level", [s.value for s in ServiceLevel])
    weight = st.number_input("Weight (kg)", min_value=0.01, value=3.0, step=0.5)

    with st.expander("Dimensions (cm)"):
        use_dims = st.checkbox("Provide dimensions")
        length = st.number_input("Length", min_value=1.0, value=40.0)
        width = st.number_input("Width", min_value=1.0, value=30.0)
        height = st.number_input("Height", min_value=1.0, value=20.0)

    declared_value = st.number_input("Declared value", min_value=0.0, value=0.0, step=50.0)
    package_count = st.number_input("Packages", min_value=1, value=1, step=1)

    st.header("Customer")
    customer_raw = st.text_input("Customer ID", value="")
    promo_code = st.text_input("Promo code", value="")
    groups_raw = st.text_input("Customer groups (comma separated)", value="")
    as_of_date = st.date_input("Price as of", value=datetime.now().date())

offered = sorted(snapshot.services_for(carrier_code))
services = st.multiselect("Additional services", offered)

shipment = Shipment(
    carrier_code=carrier_code,
    zone_code=zone_code,
    service_type=ServiceLevel(service_type),
    weight_kg=Decimal(str(weight)),
    dimensions=Dimensions(Decimal(str(length)), Decimal(str(width)), Decimal(str(height))) if use_dims else None,
    declared_value=Decimal(str(declared_value)),
    package_count=int(package_count),
)
kwargs = dict(
    customer_id=int(customer_raw) if customer_raw.strip().isdigit() else None,
    requested_services=services,
    promo_code=promo_code.strip() or None,
    as_of=datetime.combine(as_of_date, datetime.now().time()),
    customer_groups=[g.strip() for g in groups_raw.split(",") if g.strip()],
)

tab1, tab2, tab3 = st.tabs(["⚡ Quote", "🚚 Compare Carriers", "📊 Contracts & Promotions"])

# ============================================================================
# TAB 1: Quote
# ============================================================================
with tab1:
    try:
        quote = engine.quote(shipment, **kwargs)
    except PricingError as e:
        st.error(f"{e.code}: {e.message}")
    else:
        m1, m2, m3 = st.columns(3)
        m1.metric("Payable", f"{quote.grand_total:.2f} {quote.currency}")
        m2.metric("Before tax", f"{quote.total_before_tax:.2f}")
        m3.metric("Billable weight", f"{quote.billable_weight_kg:.2f} kg")

        st.dataframe(
            pd.DataFrame([
                {"Line": line.kind, "Code": line.code, "Description": line.description,
                 "Amount": float(line.amount)}
                for line in quote.lines
            ]),
            use_container_width=True, hide_index=True,
        )
        for warning in quote.warnings:
            st.warning(warning)

        with st.expander("🔍 Resolution Details"):
            st.code(quote.get_trace_text(), language=None)

# ============================================================================
# TAB 2: Carrier comparison
# ============================================================================
with tab2:
    quotes = engine.compare_across_carriers(shipment, **kwargs)
    if not quotes:
        st.info("No carrier can price this shipment.")
    else:
        st.dataframe(
            pd.DataFrame([
                {"Carrier": q.carrier_code, "Table": q.table_id, "Base": float(q.base_price),
                 "Services": float(q.services_total),
                 "Discounts": float(q.customer_discount + q.promotional_discount),
                 "Tax": float(q.tax_amount), "Total": float(q.grand_total), "Currency": q.currency}
                for q in quotes
            ]),
            use_container_width=True, hide_index=True,
        )
        st.caption("Cheapest first. Carriers that cannot take the shipment are left out.")

# ============================================================================
# TAB 3: Contracts & promotions
# ============================================================================
with tab3:
    st.subheader("Customer contracts")
    st.dataframe(
        pd.DataFrame([
            {"ID": c.id, "Customer": c.customer_id, "Table": c.base_table_id, "Name": c.name,
             "Type": c.discount_type.value, "Active": c.is_active,
             "From": c.effective_from.date(), "Until": c.effective_until.date() if c.effective_until else None}
            for c in sorted(snapshot.customer_pricing.values(), key=lambda c: c.id)
        ]),
        use_container_width=True, hide_index=True,
    )

    st.subheader("Promotions")
    st.dataframe(
        pd.DataFrame([
            {"ID": p.id, "Name": p.name, "Code": p.promo_code, "Type": p.discount_type.value,
             "Value": float(p.discount_value), "Priority": p.priority, "Stackable": p.stackable,
             "Used": p.usage_count, "Limit": p.usage_limit}
            for p in sorted(snapshot.promotions.values(), key=lambda p: p.id)
        ]),
        use_container_width=True, hide_index=True,
    )
