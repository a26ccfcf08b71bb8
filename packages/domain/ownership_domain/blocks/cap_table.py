"""Cap table computation block.

Converts a CapTableView into DataFrames for Excel rendering or analysis.

Output DataFrames:
- cap_table_ownership: one row per holder position
- cap_table_by_class: issued vs. authorized per share class of the entity
- cap_table_summary: single-row totals
"""

from typing import List

import pandas as pd

from .base import Block, BlockContext
from ..schemas.views import CapTableView

OWNERSHIP_COLUMNS = [
    "ownership_id",
    "owner_entity_id",
    "owner_name",
    "owner_type",
    "share_class_id",
    "share_class_name",
    "shares",
    "percentage",
    "fully_diluted_percentage",
    "effective_date",
    "expiry_date",
]

BY_CLASS_COLUMNS = [
    "share_class_id",
    "share_class_name",
    "share_class_type",
    "authorized_shares",
    "issued_shares",
    "available_shares",
    "ownership_pct",
    "holders_count",
]


class CapTableBlock(Block):
    """Converts a CapTableView to ownership DataFrames.

    Inputs (from context):
        - cap_table_view: CapTableView of one entity

    Outputs (to context):
        - cap_table_ownership: DataFrame with OWNERSHIP_COLUMNS, largest holding first.
          ``percentage`` is the share of the entity's issued shares,
          ``fully_diluted_percentage`` the share of the class's authorized shares.

        - cap_table_by_class: DataFrame with BY_CLASS_COLUMNS, one row per share
          class the entity issues (classes with no holders included, zero-filled)

        - cap_table_summary: DataFrame with a single row:
            * entity_id, entity_name, entity_type
            * total_shares: Shares issued across all holders
            * authorized_shares / available_shares: Over the entity's share classes
            * total_holders: Distinct owner entities
            * total_share_classes: Classes issued by the entity
            * has_data: False when nothing is issued

    Example:
        context = BlockContext.with_values(cap_table_view=repository.get_cap_table_view(opco_id))
        CapTableBlock().execute(context)
        context.get("cap_table_ownership")
    """

    def __init__(self, view_key: str = "cap_table_view"):
        """Initialize CapTableBlock.

        Args:
            view_key: Context key of the CapTableView input
        """
        self.view_key = view_key

    def inputs(self) -> List[str]:
        return [self.view_key]

    def outputs(self) -> List[str]:
        return [
            "cap_table_ownership",
            "cap_table_by_class",
            "cap_table_summary",
        ]

    def execute(self, context: BlockContext) -> None:
        view: CapTableView = context.get(self.view_key)

        ownership_df = self._compute_ownership(view)
        context.set("cap_table_ownership", ownership_df)
        context.set("cap_table_by_class", self._compute_by_class(view, ownership_df))
        context.set("cap_table_summary", self._compute_summary(view, ownership_df))

    def _compute_ownership(self, view: CapTableView) -> pd.DataFrame:
        rows = [
            {
                "ownership_id": row.ownership_id,
                "owner_entity_id": row.owner_entity_id,
                "owner_name": row.owner_name,
                "owner_type": row.owner_type,
                "share_class_id": row.share_class_id,
                "share_class_name": row.share_class_name,
                "shares": float(row.shares),
                "percentage": row.percentage,
                "fully_diluted_percentage": row.fully_diluted_percentage,
                "effective_date": row.effective_date,
                "expiry_date": row.expiry_date,
            }
            for row in view.ownership_summary
        ]
        # Rows arrive sorted by shares from the view.
        return pd.DataFrame(rows, columns=OWNERSHIP_COLUMNS)

    def _compute_by_class(self, view: CapTableView, ownership_df: pd.DataFrame) -> pd.DataFrame:
        if ownership_df.empty:
            holders = pd.DataFrame(columns=["share_class_id", "ownership_pct", "holders_count"])
        else:
            holders = ownership_df.groupby("share_class_id").agg(
                ownership_pct=("percentage", "sum"),
                holders_count=("owner_entity_id", "nunique"),
            ).reset_index()

        classes = pd.DataFrame(
            [
                {
                    "share_class_id": sc.id,
                    "share_class_name": sc.name,
                    "share_class_type": sc.type,
                    "authorized_shares": float(sc.authorized_shares),
                    "issued_shares": float(sc.issued_shares),
                    "available_shares": float(sc.available_shares),
                }
                for sc in view.share_classes
            ],
            columns=BY_CLASS_COLUMNS[:6],
        )

        by_class = classes.merge(holders, on="share_class_id", how="left")
        by_class["ownership_pct"] = by_class["ownership_pct"].fillna(0.0).astype(float)
        by_class["holders_count"] = by_class["holders_count"].fillna(0).astype(int)
        return by_class[BY_CLASS_COLUMNS]

    def _compute_summary(self, view: CapTableView, ownership_df: pd.DataFrame) -> pd.DataFrame:
        total_holders = 0 if ownership_df.empty else int(ownership_df["owner_entity_id"].nunique())
        return pd.DataFrame([{
            "entity_id": view.entity_id,
            "entity_name": view.entity_name,
            "entity_type": view.entity_type,
            "total_shares": float(view.total_shares),
            "authorized_shares": float(view.authorized_shares),
            "available_shares": float(view.available_shares),
            "total_holders": total_holders,
            "total_share_classes": len(view.share_classes),
            "has_data": view.has_data,
        }])
