"""Initial ledger schema: company, network, inventory, shipments, sales, layaways

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [sa.Column(name, sa.DateTime(timezone=True), nullable=False) for name in names]


def _counters(*names):
    return [sa.Column(name, sa.Integer(), nullable=False, server_default="0") for name in names]


def upgrade():
    op.create_table(
        "companies",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("singleton_key", sa.String(16), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("admin_id", sa.String(64), nullable=False),
        sa.Column("admin_name", sa.String(255), nullable=False),
        *_counters(
            "total_stock", "total_products", "total_units_sold", "total_shipments",
            "total_warehouses", "total_outlets", "total_workers", "total_revenue_cents", "in_transit",
        ),
        *_timestamps("last_updated", "created_at"),
        sa.UniqueConstraint("singleton_key", name="uq_companies_singleton_key"),
    )

    op.create_table(
        "company_products",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("company_id", sa.String(64), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        *_counters("unit_price_cents", "qty", "in_transit"),
        *_timestamps("last_updated"),
        sa.UniqueConstraint("company_id", "product_id", name="uq_company_products_company_product"),
    )
    op.create_index("ix_company_products_company_id", "company_products", ["company_id"])
    op.create_index("ix_company_products_product_id", "company_products", ["product_id"])

    op.create_table(
        "warehouses",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("manager_id", sa.String(64), nullable=True),
        sa.Column("manager_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        *_counters("total_outlets", "total_products", "total_shipments", "total_stock", "total_revenue_cents"),
        *_timestamps("last_updated", "created_at"),
    )
    op.create_index("ix_warehouses_manager_id", "warehouses", ["manager_id"])

    op.create_table(
        "outlets",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("warehouse_id", sa.String(64), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("manager_id", sa.String(64), nullable=True),
        sa.Column("manager_name", sa.String(255), nullable=True),
        sa.Column("rep_ids", sa.JSON(), nullable=False),
        sa.Column("rep_names", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        *_counters("total_stock", "total_products", "total_sales", "revenue_cents"),
        *_timestamps("last_updated", "created_at"),
    )
    op.create_index("ix_outlets_warehouse_id", "outlets", ["warehouse_id"])
    op.create_index("ix_outlets_manager_id", "outlets", ["manager_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("company_id", sa.String(64), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False),
        *_timestamps("last_updated", "created_at"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
    )
    op.create_index("ix_products_name", "products", ["name"])
    op.create_index("ix_products_company_id", "products", ["company_id"])

    op.create_table(
        "warehouse_inventory",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("warehouse_id", sa.String(64), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        *_counters("unit_price_cents", "qty", "in_transit", "total_shipped", "total_received", "revenue_cents"),
        sa.Column("status", sa.String(16), nullable=False),
        *_timestamps("last_updated", "created_at"),
        sa.UniqueConstraint("warehouse_id", "product_id", name="uq_warehouse_inventory_warehouse_product"),
    )
    op.create_index("ix_warehouse_inventory_warehouse_id", "warehouse_inventory", ["warehouse_id"])
    op.create_index("ix_warehouse_inventory_product_id", "warehouse_inventory", ["product_id"])

    op.create_table(
        "outlet_inventory",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("outlet_id", sa.String(64), sa.ForeignKey("outlets.id"), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("warehouse_id", sa.String(64), nullable=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        *_counters("unit_price_cents", "qty", "total_received", "total_sold", "revenue_cents"),
        sa.Column("status", sa.String(16), nullable=False),
        *_timestamps("last_updated", "created_at"),
        sa.UniqueConstraint("outlet_id", "product_id", name="uq_outlet_inventory_outlet_product"),
    )
    op.create_index("ix_outlet_inventory_outlet_id", "outlet_inventory", ["outlet_id"])
    op.create_index("ix_outlet_inventory_product_id", "outlet_inventory", ["product_id"])
    op.create_index("ix_outlet_inventory_warehouse_id", "outlet_inventory", ["warehouse_id"])

    op.create_table(
        "restock_logs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("added_qty", sa.Integer(), nullable=False),
        sa.Column("restocked_by", sa.String(64), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps("occurred_at"),
    )
    op.create_index("ix_restock_logs_product_id", "restock_logs", ["product_id"])
    op.create_index("ix_restock_logs_occurred_at", "restock_logs", ["occurred_at"])

    op.create_table(
        "shipments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("from_type", sa.String(16), nullable=False),
        sa.Column("from_id", sa.String(64), nullable=False),
        sa.Column("from_name", sa.String(255), nullable=False),
        sa.Column("to_type", sa.String(16), nullable=False),
        sa.Column("to_id", sa.String(64), nullable=False),
        sa.Column("to_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("sender_id", sa.String(64), nullable=True),
        sa.Column("sender_phone", sa.String(64), nullable=True),
        sa.Column("processed_by", sa.String(64), nullable=True),
        *_timestamps("created_at"),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps("last_updated"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_shipments_status", "shipments", ["status"])
    op.create_index("ix_shipments_status_created", "shipments", ["status", "created_at"])
    op.create_index("ix_shipments_from", "shipments", ["from_type", "from_id"])
    op.create_index("ix_shipments_to", "shipments", ["to_type", "to_id"])

    op.create_table(
        "shipment_lines",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("shipment_id", sa.String(64), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.UniqueConstraint("shipment_id", "product_id", name="uq_shipment_lines_shipment_product"),
    )
    op.create_index("ix_shipment_lines_shipment_id", "shipment_lines", ["shipment_id"])
    op.create_index("ix_shipment_lines_product_id", "shipment_lines", ["product_id"])

    op.create_table(
        "sales",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("transaction_id", sa.String(64), nullable=False),
        sa.Column("outlet_id", sa.String(64), nullable=False),
        sa.Column("warehouse_id", sa.String(64), nullable=True),
        sa.Column("revenue_warehouse_id", sa.String(64), nullable=True),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("qty_sold", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("sold_by", sa.String(64), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("is_reversal", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reversed_sale_id", sa.String(64), nullable=True),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("source_id", sa.String(64), nullable=True),
        *_timestamps("sold_at"),
        sa.UniqueConstraint("reversed_sale_id", name="uq_sales_reversed_sale_id"),
    )
    op.create_index("ix_sales_transaction_id", "sales", ["transaction_id"])
    op.create_index("ix_sales_outlet_id", "sales", ["outlet_id"])
    op.create_index("ix_sales_warehouse_id", "sales", ["warehouse_id"])
    op.create_index("ix_sales_product_id", "sales", ["product_id"])
    op.create_index("ix_sales_sold_by", "sales", ["sold_by"])
    op.create_index("ix_sales_sold_at", "sales", ["sold_at"])
    op.create_index("ix_sales_outlet_sold_at", "sales", ["outlet_id", "sold_at"])

    op.create_table(
        "layaways",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("reference", sa.String(32), nullable=False),
        sa.Column("outlet_id", sa.String(64), nullable=False),
        sa.Column("rep_id", sa.String(64), nullable=True),
        sa.Column("rep_name", sa.String(255), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        *_counters("total_amount_cents", "paid_amount_cents", "balance_cents"),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("sale_transaction_id", sa.String(64), nullable=True),
        *_timestamps("created_at", "last_updated"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("reference", name="uq_layaways_reference"),
    )
    op.create_index("ix_layaways_outlet_id", "layaways", ["outlet_id"])
    op.create_index("ix_layaways_rep_id", "layaways", ["rep_id"])
    op.create_index("ix_layaways_status", "layaways", ["status"])
    op.create_index("ix_layaways_sale_transaction_id", "layaways", ["sale_transaction_id"])
    op.create_index("ix_layaways_outlet_status", "layaways", ["outlet_id", "status"])

    op.create_table(
        "layaway_items",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("layaway_id", sa.String(64), sa.ForeignKey("layaways.id"), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("qty", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
    )
    op.create_index("ix_layaway_items_layaway_id", "layaway_items", ["layaway_id"])
    op.create_index("ix_layaway_items_product_id", "layaway_items", ["product_id"])

    op.create_table(
        "layaway_payments",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("layaway_id", sa.String(64), sa.ForeignKey("layaways.id"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(32), nullable=False, server_default="cash"),
        sa.Column("recorded_by", sa.String(64), nullable=True),
        *_timestamps("paid_at"),
    )
    op.create_index("ix_layaway_payments_layaway_id", "layaway_payments", ["layaway_id"])


def downgrade():
    for table in (
        "layaway_payments",
        "layaway_items",
        "layaways",
        "sales",
        "shipment_lines",
        "shipments",
        "restock_logs",
        "outlet_inventory",
        "warehouse_inventory",
        "products",
        "outlets",
        "warehouses",
        "company_products",
        "companies",
    ):
        op.drop_table(table)
