"""Test suite for bucketmesh."""
