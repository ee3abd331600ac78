import os
import sqlite3


class DatabaseSetup:
    """SQLite database setup for the business data tables."""

    def __init__(self, db_path: str = "data/bizdata.db"):
        """Initialize database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self.conn = None
        self.cursor = None

        # Ensure directory exists
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def connect(self):
        """Establish database connection."""
        self.conn = sqlite3.connect(self.db_path)
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.cursor = self.conn.cursor()
        print(f"Connected to database: {self.db_path}")

    def create_tables(self):
        """Create Roles, Users, Vendors, Commodities and Currency tables."""

        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Roles (
                Id INTEGER PRIMARY KEY AUTOINCREMENT,
                Name TEXT NOT NULL UNIQUE,
                Deleted INTEGER NOT NULL DEFAULT 0,
                CreatedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                ModifiedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Users (
                Id INTEGER PRIMARY KEY AUTOINCREMENT,
                Name TEXT NOT NULL,
                Email TEXT,
                Username TEXT NOT NULL UNIQUE,
                RoleId INTEGER,
                Department TEXT,
                Blocked INTEGER NOT NULL DEFAULT 0,
                Attempt INTEGER NOT NULL DEFAULT 0,
                Deleted INTEGER NOT NULL DEFAULT 0,
                LastLogin TIMESTAMP,
                CreatedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                ModifiedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (RoleId) REFERENCES Roles(Id)
            )
        """)

        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Vendors (
                Id INTEGER PRIMARY KEY AUTOINCREMENT,
                Name TEXT NOT NULL,
                Address TEXT,
                ContactNo TEXT,
                Email TEXT,
                Type TEXT,
                AccNo TEXT,
                BankCode TEXT,
                SettlementText TEXT,
                IsInternational INTEGER NOT NULL DEFAULT 0,
                ContractDate DATE,
                Deleted INTEGER NOT NULL DEFAULT 0,
                CreatedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                ModifiedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Commodities (
                Id INTEGER PRIMARY KEY AUTOINCREMENT,
                Code TEXT NOT NULL,
                Name TEXT NOT NULL,
                ShortName TEXT,
                Unit TEXT,
                LotSize REAL,
                BankCode TEXT,
                IsInternational INTEGER NOT NULL DEFAULT 0,
                Deleted INTEGER NOT NULL DEFAULT 0,
                CreatedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                ModifiedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Currency (
                Id INTEGER PRIMARY KEY AUTOINCREMENT,
                Name TEXT NOT NULL,
                ShortName TEXT NOT NULL,
                Symbol TEXT,
                Deleted INTEGER NOT NULL DEFAULT 0,
                CreatedOn TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Indexes for the search columns
        self.cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON Users(RoleId)")
        self.cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_department ON Users(Department)")
        self.cursor.execute("CREATE INDEX IF NOT EXISTS idx_vendors_name ON Vendors(Name)")
        self.cursor.execute("CREATE INDEX IF NOT EXISTS idx_commodities_code ON Commodities(Code)")

        self.conn.commit()
        print("Tables created successfully!")

    def create_triggers(self):
        """Create triggers for automatic ModifiedOn updates."""

        for table in ("Roles", "Users", "Vendors", "Commodities"):
            self.cursor.execute(f"""
                CREATE TRIGGER IF NOT EXISTS update_{table.lower()}_timestamp
                AFTER UPDATE ON {table}
                FOR EACH ROW
                WHEN NEW.ModifiedOn = OLD.ModifiedOn
                BEGIN
                    UPDATE {table} SET ModifiedOn = CURRENT_TIMESTAMP WHERE Id = NEW.Id;
                END
            """)

        self.conn.commit()
        print("Triggers created successfully!")

    def insert_sample_data(self):
        """Insert sample data for testing."""

        # Check if data already exists to avoid duplicates if run multiple times
        self.cursor.execute("SELECT COUNT(*) FROM Vendors")
        if self.cursor.fetchone()[0] > 0:
            print("Data already exists, skipping insertion.")
            return

        roles = [
            (1, "Administrator", 0),
            (2, "Manager", 0),
            (3, "Analyst", 0),
            (4, "Operator", 0),
            (5, "Auditor", 0),
            (6, "Legacy Support", 1),
        ]
        self.cursor.executemany(
            "INSERT OR IGNORE INTO Roles (Id, Name, Deleted) VALUES (?, ?, ?)", roles
        )

        users = [
            (1, "Asha Verma", "asha.verma@example.com", "averma", 1, "IT", 0),
            (2, "Rahul Mehta", "rahul.mehta@example.com", "rmehta", 2, "Finance", 0),
            (3, "Priya Nair", "priya.nair@example.com", "pnair", 3, "Finance", 0),
            (4, "John Doe", "john.doe@example.com", "jdoe", 4, "Operations", 0),
            (5, "Jane Smith", "jane.smith@example.com", "jsmith", 3, "Risk", 0),
            (6, "Vikram Rao", "vikram.rao@example.com", "vrao", 5, "Compliance", 0),
            (7, "Meera Iyer", "meera.iyer@example.com", "miyer", 2, "Operations", 0),
            (8, "Old Account", "old.account@example.com", "oldacct", 4, "Operations", 1),
        ]
        self.cursor.executemany("""
            INSERT OR IGNORE INTO Users (Id, Name, Email, Username, RoleId, Department, Deleted)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, users)

        # Explicitly setting IDs for required scenarios
        vendors = [
            (1, "Acme Metals Ltd", "12 Dock Road, Mumbai", "+91-22-5550101", "acme@example.com", "Supplier", "IN-BANK-001", 0),
            (2, "Globex Trading", "88 Harbour St, Singapore", "+65-5550102", "globex@example.com", "Broker", "SG-BANK-014", 1),
            (3, "Initech Logistics", "4 Ring Road, Delhi", "+91-11-5550103", "initech@example.com", "Logistics", "IN-BANK-002", 0),
            (4, "Umbrella Refining", "21 Canal St, Rotterdam", "+31-10-5550104", "umbrella@example.com", "Refiner", "NL-BANK-007", 1),
            (5, "Stark Bullion", "1 Gold Lane, Dubai", "+971-4-5550105", "stark@example.com", "Supplier", "AE-BANK-003", 1),
            (6, "Wayne Vaults", "9 Fort St, Chennai", "+91-44-5550106", "wayne@example.com", "Custodian", "IN-BANK-004", 0),
            (7, "Hooli Payments", "300 Market St, London", "+44-20-5550107", "hooli@example.com", "Payments", "GB-BANK-010", 1),
            (8, "Soylent Agro", "7 Farm Road, Pune", "+91-20-5550108", "soylent@example.com", "Supplier", "IN-BANK-005", 0),
            (42, "Vendor Forty Two Pvt Ltd", "42 Galaxy Road, Bengaluru", "+91-80-5550142", "v42@example.com", "Supplier", "IN-BANK-042", 0),
            (43, "Retired Vendor Co", "1 Old Street, Kolkata", "+91-33-5550143", "retired@example.com", "Supplier", "IN-BANK-043", 0),
        ]
        self.cursor.executemany("""
            INSERT OR IGNORE INTO Vendors (Id, Name, Address, ContactNo, Email, Type, BankCode, IsInternational)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, vendors)
        self.cursor.execute("UPDATE Vendors SET Deleted = 1 WHERE Id = 43")

        commodities = [
            (1, "GOLD", "Gold", "AU", "kg", 1.0, "IN-BANK-001", 1),
            (2, "SILVER", "Silver", "AG", "kg", 30.0, "IN-BANK-001", 1),
            (3, "COPPER", "Copper", "CU", "tonne", 2.5, "IN-BANK-002", 0),
            (4, "CRUDE", "Crude Oil", "CL", "barrel", 100.0, "AE-BANK-003", 1),
            (5, "NATGAS", "Natural Gas", "NG", "mmBtu", 1250.0, "AE-BANK-003", 1),
            (6, "ZINC", "Zinc", "ZN", "tonne", 5.0, "IN-BANK-002", 0),
        ]
        self.cursor.executemany("""
            INSERT OR IGNORE INTO Commodities (Id, Code, Name, ShortName, Unit, LotSize, BankCode, IsInternational)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, commodities)

        currencies = [
            (1, "Indian Rupee", "INR", "₹"),
            (2, "US Dollar", "USD", "$"),
            (3, "Euro", "EUR", "€"),
            (4, "British Pound", "GBP", "£"),
            (5, "UAE Dirham", "AED", "د.إ"),
            (6, "Singapore Dollar", "SGD", "S$"),
        ]
        self.cursor.executemany(
            "INSERT OR IGNORE INTO Currency (Id, Name, ShortName, Symbol) VALUES (?, ?, ?, ?)",
            currencies,
        )

        self.conn.commit()
        print("Sample data inserted successfully!")
        print(f"  - {len(roles)} roles added")
        print(f"  - {len(users)} users added")
        print(f"  - {len(vendors)} vendors added")
        print(f"  - {len(commodities)} commodities added")
        print(f"  - {len(currencies)} currencies added")

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            print("Database connection closed.")


def setup_database(db_path: str) -> bool:
    """Create tables, triggers and sample data. Returns True on success."""

    db = DatabaseSetup(db_path)

    try:
        db.connect()
        db.create_tables()
        db.create_triggers()
        db.insert_sample_data()
        print("\n✓ Database setup complete!")
        return True

    except sqlite3.Error as e:
        print(f"Database error: {e}")
        return False
    finally:
        db.close()
