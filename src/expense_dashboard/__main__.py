from expense_dashboard.main import run

run()
