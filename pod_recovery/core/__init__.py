"""Classes principais do harness"""
