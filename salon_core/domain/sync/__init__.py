"""External sync - provider ports, registry, orchestrator and retries"""
