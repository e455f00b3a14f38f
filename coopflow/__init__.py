"""coopflow - disbursement approval workflow for savings and credit cooperatives."""

__version__ = "0.1.0"
