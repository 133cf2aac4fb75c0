"""EC2/EBS gateway."""

from blockhub.adapters.ec2.gateway import EC2Gateway

__all__ = ["EC2Gateway"]
