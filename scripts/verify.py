"""
Archive Verification Script

Checks the order archive written by the daily reset.
Run from project root: python scripts/verify.py

Author: Khalil Bannouri
Version: 3.0.0
"""

import argparse
import os
from datetime import datetime

import pandas as pd

ARCHIVE_FILE = os.path.join('data', 'queue_archive.xlsx')


def verify_archive(path: str = ARCHIVE_FILE) -> bool:
    """Per-day counts, duplicate ids and duplicate tickets in the archive."""

    print("=" * 60)
    print("🔍 ARCHIVE VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {path}")
    print("=" * 60)

    if not os.path.exists(path):
        print("\n❌ Archive file not found!")
        print("   Nothing has been archived yet; it is written on the first daily reset.")
        return False

    try:
        df = pd.read_excel(path, engine='openpyxl')
        print(f"\n✅ File loaded successfully!")
    except (OSError, ValueError) as e:
        print(f"\n❌ Could not read archive: {e}")
        return False

    required = ['business_date', 'order_id', 'ticket', 'status']
    missing = [col for col in required if col not in df.columns]
    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
        return False
    print(f"✅ All required columns present")

    print(f"\n📊 STATISTICS:")
    print(f"   Total Orders: {len(df)}")
    print(f"   Business Days: {df['business_date'].nunique()}")

    ok = True
    print(f"\n📅 PER DAY:")
    print("-" * 60)
    for day, group in df.groupby('business_date'):
        dup_ids = int(group['order_id'].duplicated().sum())
        dup_tickets = int(group['ticket'].dropna().duplicated().sum())
        flag = "✅" if not dup_ids and not dup_tickets else "⚠️"
        ok = ok and not dup_ids and not dup_tickets
        print(f"   {flag} {day}: {len(group)} orders, "
              f"{dup_ids} duplicate ids, {dup_tickets} duplicate tickets")

    if 'status' in df.columns:
        print(f"\n📋 STATUS MIX:")
        print(df['status'].value_counts().to_string())

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "⚠️ VERIFICATION FOUND PROBLEMS")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Archive Verification Script")
    parser.add_argument("--file", default=ARCHIVE_FILE, help="Archive workbook path")
    args = parser.parse_args()
    verify_archive(args.file)
