"""Multi-currency token ledger, single-currency adapter and issuance imbalances."""