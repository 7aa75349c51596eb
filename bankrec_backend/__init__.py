"""Bank reconciliation backend package.

Matches cash-receipt journal batches against bank statement transactions.
Run the API standalone via Uvicorn:

    python -m uvicorn bankrec_backend.api_app:app --host 127.0.0.1 --port 8000

or use the command line:

    bankrec run --ledger-a journal.csv --bank statement.xlsx --account "Main" --map-account "Main=ACC1" \
        --identifier-col "Account" --amount-col "Amount" --date-col "Date"
"""
