"""Repair a hybrid GCE + AWS gluster cluster after ec2 instances have stopped."""

__version__ = "1.0.0"
