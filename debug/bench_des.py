#!/usr/bin/env python3
"""Quick DES-CBC / CPI build benchmark - direct timing only"""
import time


PAYLOAD = bytes(range(256)) * 256
ITERATIONS = 5


def bench_cbc():
    from ppfcpi.chaining import OUTER_KEY, des_cbc_encrypt, vendor_pad

    data = vendor_pad(PAYLOAD)
    start = time.perf_counter()
    for _ in range(ITERATIONS):
        result = des_cbc_encrypt(data, OUTER_KEY)
    elapsed = time.perf_counter() - start
    return elapsed, result


def bench_cpi():
    from ppfcpi.main import Blob, Pack, ppfcpi

    pack = Pack("BENCH", "Bench", [Blob("B1", "S1", "wav", None, PAYLOAD)])
    start = time.perf_counter()
    for _ in range(ITERATIONS):
        result = ppfcpi.build_encrypted_cpi(pack, "BENCH", 1, "BENCH-DEVICE-0000")
    elapsed = time.perf_counter() - start
    return elapsed, result


def main():
    print(f"Benchmarking DES-CBC ({ITERATIONS} iterations)...")
    print(f"Input size: {len(PAYLOAD)} bytes\n")

    cbc_time, cbc_result = bench_cbc()
    rate = len(PAYLOAD) * ITERATIONS / cbc_time / 1024
    print(f"  Time: {cbc_time:.3f}s ({cbc_time / ITERATIONS * 1000:.2f} ms/op, {rate:.1f} KB/s)")
    print(f"  Output sample: {cbc_result[:16].hex()}...")

    print("\nBenchmarking locked CPI build ...")
    cpi_time, cpi_result = bench_cpi()
    print(f"  Time: {cpi_time:.3f}s ({cpi_time / ITERATIONS * 1000:.2f} ms/op)")
    print(f"  Output size: {len(cpi_result)} bytes")


if __name__ == '__main__':
    main()
