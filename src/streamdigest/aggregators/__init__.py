from .sharded import ShardedDigestBuilder, merge_digests

__all__ = ["ShardedDigestBuilder", "merge_digests"]
